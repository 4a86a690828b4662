import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from config import settings
from services.connectors.googlesheets.scheduler import SheetsSyncWorker


def require_admin_api_key(x_admin_api_key: Optional[str] = Header(default=None)) -> None:
    """Reject requests without the configured X-Admin-Api-Key header."""
    expected = settings.ADMIN_API_KEY
    if not expected or not x_admin_api_key or not secrets.compare_digest(x_admin_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


def get_sync_worker(request: Request) -> SheetsSyncWorker:
    """The application's sync worker, created in the lifespan."""
    worker = getattr(request.app.state, "sheets_sync_worker", None)
    if worker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync worker not available",
        )
    return worker
