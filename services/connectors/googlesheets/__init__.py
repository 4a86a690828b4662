"""
Google Sheets connector: OAuth client, connection store, sync executor and
the recurring sync worker.
"""
from services.connectors.googlesheets.client import GoogleSheetsConnector
from services.connectors.googlesheets.connection_store import (
    ConnectionStore,
    get_connection_store,
    compute_next_sync_at,
)
from services.connectors.googlesheets.errors import (
    SyncError,
    CredentialError,
    TokenExpiredError,
    SourceUnavailableError,
    MappingResolutionMiss,
    PersistenceError,
    ConnectionBusyError,
    ConnectionNotFoundError,
)
from services.connectors.googlesheets.sync_service import (
    SheetsSyncService,
    SyncResult,
    get_sheets_sync_service,
)
from services.connectors.googlesheets.setup_service import GoogleSheetsSetupService, get_setup_service
from services.connectors.googlesheets.scheduler import SheetsSyncWorker, TickResult

__all__ = [
    "GoogleSheetsConnector",
    "ConnectionStore",
    "get_connection_store",
    "compute_next_sync_at",
    "SyncError",
    "CredentialError",
    "TokenExpiredError",
    "SourceUnavailableError",
    "MappingResolutionMiss",
    "PersistenceError",
    "ConnectionBusyError",
    "ConnectionNotFoundError",
    "SheetsSyncService",
    "SyncResult",
    "get_sheets_sync_service",
    "GoogleSheetsSetupService",
    "get_setup_service",
    "SheetsSyncWorker",
    "TickResult",
]
