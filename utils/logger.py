import logging
import sys

from config.settings import LOG_LEVEL


def get_logger(name: str):
    logger = logging.getLogger(name)

    # Avoid duplicate handlers (Uvicorn already adds one)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    # Follow Uvicorn's level when it is configured, otherwise LOG_LEVEL
    uvicorn_level = logging.getLogger("uvicorn").level
    logger.setLevel(uvicorn_level or logging.getLevelName(LOG_LEVEL.upper()))

    # Prevent double propagation to root handler
    logger.propagate = False

    return logger
