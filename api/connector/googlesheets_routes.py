"""API routes for Google Sheets connector management"""

import secrets
from typing import Optional
from datetime import datetime, timedelta
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from config.settings import FRONTEND_URL, SHEET_PREVIEW_MAX_ROWS
from database.connection import get_session
from api.dependencies import require_admin_api_key, get_sync_worker
from services.connectors.googlesheets.client import GoogleSheetsConnector
from services.connectors.googlesheets.connection_store import ConnectionStore
from services.connectors.googlesheets.errors import (
    SyncError,
    CredentialError,
    SourceUnavailableError,
    ConnectionBusyError,
    ConnectionNotFoundError,
)
from services.connectors.googlesheets.scheduler import SheetsSyncWorker
from services.connectors.googlesheets.setup_service import GoogleSheetsSetupService
from services.connectors.googlesheets.sync_service import SheetsSyncService
from api.connector.schemas import (
    ConnectorInfoResponse,
    OAuthStartResponse,
    SpreadsheetListResponse,
    SpreadsheetInfo,
    SheetListResponse,
    SheetInfoResponse,
    SheetPreviewResponse,
    ConnectionCreateRequest,
    ConnectionResponse,
    ConnectionListResponse,
    FundStatusResponse,
    MappingUpdateRequest,
    ScheduleUpdateRequest,
    SyncResultResponse,
    TickResultResponse,
)
from utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_connector() -> GoogleSheetsConnector:
    """Google API client dependency (overridden in tests)"""
    return GoogleSheetsConnector()


def _http_error(e: SyncError) -> HTTPException:
    """Map a sync error to an HTTP error without leaking internals"""
    if isinstance(e, ConnectionNotFoundError):
        return HTTPException(status_code=404, detail="Connection not found")
    if isinstance(e, ConnectionBusyError):
        return HTTPException(status_code=409, detail="A sync is already running for this connection")
    if isinstance(e, (CredentialError, SourceUnavailableError)):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


# ============================================================================
# Google Sheets Info
# ============================================================================

@router.get("/info", response_model=ConnectorInfoResponse, dependencies=[Depends(require_admin_api_key)])
async def get_googlesheets_info(
    connector: GoogleSheetsConnector = Depends(get_connector),
    worker: SheetsSyncWorker = Depends(get_sync_worker),
):
    """Get Google Sheets connector info and configuration status"""
    return ConnectorInfoResponse(
        provider="google_sheets",
        display_name="Google Sheets",
        description="Sync KPI values from a Google Sheets spreadsheet on a schedule",
        is_configured=connector.is_configured(),
        scheduler_running=worker.is_running,
    )


# ============================================================================
# OAuth
# ============================================================================

# In-memory state storage (maps state -> context)
# In production with multiple workers, use a shared store instead
_oauth_states: dict = {}


def _cleanup_expired_states():
    """Remove states older than 10 minutes"""
    now = datetime.utcnow()
    expired = [k for k, v in _oauth_states.items()
               if now - v.get("created_at", now) > timedelta(minutes=10)]
    for k in expired:
        del _oauth_states[k]


@router.get("/oauth/start", response_model=OAuthStartResponse, dependencies=[Depends(require_admin_api_key)])
async def start_googlesheets_oauth(
    fund_id: str,
    connector: GoogleSheetsConnector = Depends(get_connector),
):
    """
    Start Google OAuth flow.
    Returns authorization URL to redirect user to Google consent.
    """
    if not connector.is_configured():
        raise HTTPException(
            status_code=400,
            detail="Google Sheets integration not configured. Contact administrator."
        )

    _cleanup_expired_states()

    state = secrets.token_urlsafe(32)
    _oauth_states[state] = {
        "fund_id": fund_id,
        "created_at": datetime.utcnow(),
    }

    auth_url = connector.get_authorization_url(state)
    logger.info(f"[GoogleSheets] Started OAuth for fund {fund_id}")

    return OAuthStartResponse(authorization_url=auth_url, state=state)


@router.get("/oauth/callback")
async def googlesheets_oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    connector: GoogleSheetsConnector = Depends(get_connector),
):
    """
    Handle Google OAuth callback (GET redirect from Google).
    Exchanges code for tokens and redirects to the frontend with encrypted
    connection_data for the wizard. Authenticated by the state value.
    """
    frontend_url = f"{FRONTEND_URL}/manager/data"

    if error:
        logger.error(f"[GoogleSheets] OAuth error: {error}")
        return RedirectResponse(url=f"{frontend_url}?{urlencode({'google_sheets_error': error})}")

    if not code or not state:
        logger.error("[GoogleSheets] Missing OAuth params")
        return RedirectResponse(url=f"{frontend_url}?{urlencode({'google_sheets_error': 'missing_params'})}")

    state_data = _oauth_states.pop(state, None)
    if not state_data:
        logger.error("[GoogleSheets] Invalid or expired state")
        return RedirectResponse(url=f"{frontend_url}?{urlencode({'google_sheets_error': 'invalid_state'})}")

    try:
        token_data = await connector.exchange_code_for_tokens(code)
    except CredentialError as e:
        logger.error(f"[GoogleSheets] Token exchange failed: {e}")
        return RedirectResponse(url=f"{frontend_url}?{urlencode({'google_sheets_error': 'token_exchange_failed'})}")

    params = urlencode({
        "google_sheets_connected": "true",
        "fund_id": state_data["fund_id"],
        "google_email": token_data.get("email") or "",
        "connection_data": GoogleSheetsSetupService.build_connection_data(token_data),
    })
    logger.info(f"[GoogleSheets] OAuth completed for fund {state_data['fund_id']}")
    return RedirectResponse(url=f"{frontend_url}?{params}")


# ============================================================================
# Spreadsheet Discovery
# ============================================================================

@router.get("/spreadsheets", response_model=SpreadsheetListResponse, dependencies=[Depends(require_admin_api_key)])
async def list_spreadsheets(
    fund_id: Optional[str] = None,
    connection_data: Optional[str] = None,
    session: Session = Depends(get_session),
    connector: GoogleSheetsConnector = Depends(get_connector),
):
    """List spreadsheets using new connection_data or the fund's existing credentials"""
    service = GoogleSheetsSetupService(session, connector)
    try:
        tokens = service.resolve_tokens(fund_id, connection_data)
        spreadsheets = await service.list_spreadsheets(tokens)
    except SyncError as e:
        raise _http_error(e)

    return SpreadsheetListResponse(spreadsheets=[SpreadsheetInfo(**s) for s in spreadsheets])


@router.get(
    "/spreadsheets/{spreadsheet_id}/sheets",
    response_model=SheetListResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def list_sheets(
    spreadsheet_id: str,
    fund_id: Optional[str] = None,
    connection_data: Optional[str] = None,
    session: Session = Depends(get_session),
    connector: GoogleSheetsConnector = Depends(get_connector),
):
    """List the tabs of a spreadsheet"""
    service = GoogleSheetsSetupService(session, connector)
    try:
        tokens = service.resolve_tokens(fund_id, connection_data)
        sheets = await service.list_sheets(tokens, spreadsheet_id)
    except SyncError as e:
        raise _http_error(e)

    return SheetListResponse(sheets=[SheetInfoResponse.model_validate(s) for s in sheets])


@router.get(
    "/spreadsheets/{spreadsheet_id}/sheets/{sheet_name}/preview",
    response_model=SheetPreviewResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def preview_sheet(
    spreadsheet_id: str,
    sheet_name: str,
    fund_id: Optional[str] = None,
    connection_data: Optional[str] = None,
    max_rows: int = Query(default=SHEET_PREVIEW_MAX_ROWS, ge=1, le=1000),
    session: Session = Depends(get_session),
    connector: GoogleSheetsConnector = Depends(get_connector),
):
    """Preview a sheet: detected sections, flattened rows and mapping suggestions"""
    service = GoogleSheetsSetupService(session, connector)
    try:
        tokens = service.resolve_tokens(fund_id, connection_data)
        result = await service.preview_sheet(tokens, spreadsheet_id, sheet_name, max_rows)
    except SyncError as e:
        raise _http_error(e)

    return SheetPreviewResponse(**result)


# ============================================================================
# Connections
# ============================================================================

@router.get("/funds/{fund_id}/status", response_model=FundStatusResponse, dependencies=[Depends(require_admin_api_key)])
async def get_fund_status(
    fund_id: str,
    session: Session = Depends(get_session),
):
    """Google Sheets connection status for a fund"""
    return FundStatusResponse(**ConnectionStore(session).get_status(fund_id))


@router.get(
    "/funds/{fund_id}/connections",
    response_model=ConnectionListResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def list_fund_connections(
    fund_id: str,
    session: Session = Depends(get_session),
):
    """List all Google Sheets connections of a fund"""
    connections = ConnectionStore(session).list_for_fund(fund_id)
    return ConnectionListResponse(
        connections=[ConnectionResponse.model_validate(c) for c in connections],
        total=len(connections),
    )


@router.post("/connections", response_model=ConnectionResponse, status_code=201, dependencies=[Depends(require_admin_api_key)])
async def create_connection(
    request: ConnectionCreateRequest,
    session: Session = Depends(get_session),
    connector: GoogleSheetsConnector = Depends(get_connector),
):
    """Save a connection from the wizard (new OAuth tokens or reused fund credentials)"""
    service = GoogleSheetsSetupService(session, connector)
    try:
        tokens = service.resolve_tokens(request.fund_id, request.connection_data)
        connection = service.create_connection(
            tokens=tokens,
            fund_id=request.fund_id,
            name=request.name,
            spreadsheet_id=request.spreadsheet_id,
            sheet_name=request.sheet_name,
            column_mapping=[m.model_dump(mode="json") for m in request.column_mapping],
            deal_id=request.deal_id,
            sync_frequency=request.sync_frequency.value,
            sync_enabled=request.sync_enabled,
            created_by=request.created_by,
        )
    except SyncError as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ConnectionResponse.model_validate(connection)


@router.get("/connections/{connection_id}", response_model=ConnectionResponse, dependencies=[Depends(require_admin_api_key)])
async def get_connection(
    connection_id: str,
    session: Session = Depends(get_session),
):
    """Get a connection by ID"""
    try:
        connection = ConnectionStore(session).get(connection_id)
    except ConnectionNotFoundError as e:
        raise _http_error(e)
    return ConnectionResponse.model_validate(connection)


@router.put(
    "/connections/{connection_id}/mapping",
    response_model=ConnectionResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def update_connection_mapping(
    connection_id: str,
    request: MappingUpdateRequest,
    session: Session = Depends(get_session),
):
    """Replace the column mapping of a connection"""
    try:
        connection = ConnectionStore(session).update_mapping(
            connection_id, [m.model_dump(mode="json") for m in request.column_mapping]
        )
    except ConnectionNotFoundError as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ConnectionResponse.model_validate(connection)


@router.put(
    "/connections/{connection_id}/schedule",
    response_model=ConnectionResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def update_connection_schedule(
    connection_id: str,
    request: ScheduleUpdateRequest,
    session: Session = Depends(get_session),
):
    """Change sync frequency / enabled; next sync time is recomputed"""
    try:
        connection = ConnectionStore(session).update_schedule(
            connection_id, request.sync_frequency.value, request.sync_enabled
        )
    except ConnectionNotFoundError as e:
        raise _http_error(e)
    return ConnectionResponse.model_validate(connection)


@router.delete("/connections/{connection_id}", dependencies=[Depends(require_admin_api_key)])
async def disconnect_connection(
    connection_id: str,
    session: Session = Depends(get_session),
    connector: GoogleSheetsConnector = Depends(get_connector),
):
    """Disconnect and delete a connection"""
    try:
        await GoogleSheetsSetupService(session, connector).disconnect(connection_id)
    except ConnectionNotFoundError as e:
        raise _http_error(e)
    return {"message": "Google Sheets connection disconnected successfully"}


@router.post(
    "/connections/{connection_id}/sync",
    response_model=SyncResultResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def sync_connection_now(
    connection_id: str,
    session: Session = Depends(get_session),
    connector: GoogleSheetsConnector = Depends(get_connector),
):
    """Run a sync for one connection now, regardless of its schedule"""
    service = SheetsSyncService(session, connector)
    try:
        result = await service.run_sync(connection_id)
    except SyncError as e:
        raise _http_error(e)

    connection = ConnectionStore(session).get(connection_id)
    return SyncResultResponse(
        **result.to_dict(),
        sync_status=connection.sync_status,
        next_sync_at=connection.next_sync_at,
    )


# ============================================================================
# Admin
# ============================================================================

@router.post("/admin/run-sync", response_model=TickResultResponse, dependencies=[Depends(require_admin_api_key)])
async def admin_run_sync(
    worker: SheetsSyncWorker = Depends(get_sync_worker),
):
    """Run one scheduler tick now (for an external cron)"""
    result = await worker.tick_now()
    return TickResultResponse(**result.to_dict())


@router.post(
    "/admin/sync-connection/{connection_id}",
    response_model=SyncResultResponse,
    dependencies=[Depends(require_admin_api_key)],
)
async def admin_sync_connection(
    connection_id: str,
    worker: SheetsSyncWorker = Depends(get_sync_worker),
):
    """Forced sync of one connection through the worker"""
    try:
        result = await worker.sync_connection(connection_id)
    except SyncError as e:
        raise _http_error(e)
    return SyncResultResponse(**result.to_dict())
