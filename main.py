import uvicorn
from contextlib import asynccontextmanager
from datetime import datetime
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from api import api_router
from config.settings import API_HOST, API_PORT, FRONTEND_URL, SHEETS_SYNC_SCHEDULER_ENABLED
from database.connection import create_db_and_tables
from database.seed import seed_database
from services.connectors.googlesheets.scheduler import SheetsSyncWorker
from utils.logger import get_logger

# Initialize logger
logger = get_logger(__name__)

PROCESS_STARTED_AT = datetime.utcnow()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - runs on startup and shutdown"""
    logger.info("Starting application...")
    create_db_and_tables()
    logger.info("Database tables created/verified")
    seed_database()
    logger.info("Database seeded with KPI definitions")

    worker = SheetsSyncWorker(process_started_at=PROCESS_STARTED_AT)
    app.state.sheets_sync_worker = worker
    if SHEETS_SYNC_SCHEDULER_ENABLED:
        worker.start()
    else:
        # Admin-triggered ticks still need stale rows reset
        worker.reconcile_stale_locks()
        logger.info("Google Sheets sync scheduler disabled; use the admin endpoint to run ticks")
    yield
    worker.stop()
    logger.info("Shutting down application...")


# Create FastAPI app with lifespan
app = FastAPI(
    title="KPI Sync",
    version="1.0.0",
    description="Spreadsheet ingestion and KPI sync API",
    lifespan=lifespan
)

# Include API routes
app.include_router(api_router, prefix="/api")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL, "http://localhost:8000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run(app, host=API_HOST, port=API_PORT)
