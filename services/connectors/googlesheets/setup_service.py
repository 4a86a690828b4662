"""
Google Sheets setup service.
Backs the connect wizard: spreadsheet discovery, sheet preview with mapping
suggestions, connection creation and disconnect.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlmodel import Session

from config.settings import SHEET_PREVIEW_MAX_ROWS
from database.models.connector import DataConnection
from services.connectors.googlesheets.client import GoogleSheetsConnector
from services.connectors.googlesheets.connection_store import ConnectionStore
from services.connectors.googlesheets.errors import CredentialError, TokenExpiredError
from services.kpis.kpi_service import KpiService
from services.sheets.mapping_resolver import suggest_mappings
from services.sheets.models import SheetInfo
from services.sheets.section_detector import build_preview
from utils.encryption import encrypt_payload, decrypt_payload
from utils.logger import get_logger

logger = get_logger(__name__)

# connection_data handed to the wizard after OAuth is valid for one hour
CONNECTION_DATA_TTL_SECONDS = 3600


class GoogleSheetsSetupService:
    """
    Service behind the Google Sheets connect wizard.
    """

    def __init__(self, session: Session, connector: Optional[GoogleSheetsConnector] = None):
        self.session = session
        self.connector = connector or GoogleSheetsConnector()
        self.store = ConnectionStore(session)

    # =========================================================================
    # Credentials
    # =========================================================================

    @staticmethod
    def build_connection_data(token_data: Dict[str, Any]) -> str:
        """Encrypt freshly exchanged tokens for the wizard's round trip"""
        expires_at = token_data.get("expires_at")
        return encrypt_payload({
            "access_token": token_data["access_token"],
            "refresh_token": token_data["refresh_token"],
            "expires_at": expires_at.isoformat() if isinstance(expires_at, datetime) else expires_at,
            "email": token_data.get("email"),
        })

    def resolve_tokens(self, fund_id: Optional[str] = None, connection_data: Optional[str] = None) -> Dict[str, Any]:
        """
        Tokens for wizard calls: from connection_data when given, otherwise
        reused from an existing connection of the fund.

        Raises:
            CredentialError: If neither source yields usable tokens
        """
        if connection_data:
            try:
                data = decrypt_payload(connection_data, ttl=CONNECTION_DATA_TTL_SECONDS)
            except ValueError:
                raise CredentialError("Connection data is invalid or expired, please reconnect")
            expires_at = data.get("expires_at")
            return {
                "access_token": data.get("access_token"),
                "refresh_token": data.get("refresh_token"),
                "token_expiry": datetime.fromisoformat(expires_at) if expires_at else None,
                "google_email": data.get("email"),
            }

        if fund_id:
            existing = self.store.get_existing_credentials(fund_id)
            if existing:
                logger.info(f"[GoogleSheets] Reusing credentials of connection {existing['connection_id']}")
                return existing

        raise CredentialError("No Google credentials available, please connect Google Sheets")

    async def _with_fresh_token(self, tokens: Dict[str, Any], call: Callable[[str], Awaitable[Any]]) -> Any:
        """Run a Google call, refreshing the access token once on a 401"""
        try:
            return await call(tokens["access_token"])
        except TokenExpiredError:
            refreshed = await self.connector.refresh_access_token(tokens.get("refresh_token"))
            tokens["access_token"] = refreshed["access_token"]
            tokens["refresh_token"] = refreshed["refresh_token"]
            tokens["token_expiry"] = refreshed.get("expires_at")
            return await call(tokens["access_token"])

    # =========================================================================
    # Discovery
    # =========================================================================

    async def list_spreadsheets(self, tokens: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._with_fresh_token(tokens, self.connector.list_spreadsheets)

    async def list_sheets(self, tokens: Dict[str, Any], spreadsheet_id: str) -> List[SheetInfo]:
        return await self._with_fresh_token(
            tokens, lambda access_token: self.connector.list_sheet_names(access_token, spreadsheet_id)
        )

    async def preview_sheet(
        self,
        tokens: Dict[str, Any],
        spreadsheet_id: str,
        sheet_name: str,
        max_rows: int = SHEET_PREVIEW_MAX_ROWS,
    ) -> Dict[str, Any]:
        """
        Detect the sheet's layout and suggest KPI mappings for its metrics.

        Returns:
            Dict with the preview payload and the mapping suggestions
        """
        grid = await self._with_fresh_token(
            tokens,
            lambda access_token: self.connector.fetch_grid(access_token, spreadsheet_id, sheet_name),
        )
        preview = build_preview(grid, max_rows=max_rows)

        metrics = [m for section in preview.sections for m in section.metrics]
        suggestions = suggest_mappings(metrics, KpiService(self.session).list_definitions())

        logger.info(
            f"[GoogleSheets] Preview of '{sheet_name}': format={preview.format.value}, "
            f"{len(preview.sections)} section(s), {len(metrics)} metric(s)"
        )
        return {
            "preview": preview.to_dict(),
            "suggestions": [s.to_dict() for s in suggestions],
        }

    # =========================================================================
    # Connections
    # =========================================================================

    def create_connection(
        self,
        tokens: Dict[str, Any],
        fund_id: str,
        name: str,
        spreadsheet_id: str,
        sheet_name: str,
        column_mapping: List[Dict[str, Any]],
        deal_id: Optional[str] = None,
        sync_frequency: str = "off",
        sync_enabled: bool = False,
        created_by: Optional[str] = None,
    ) -> DataConnection:
        if not tokens.get("refresh_token"):
            raise CredentialError("A refresh token is required to save a connection")

        return self.store.save_connection(
            fund_id=fund_id,
            name=name,
            spreadsheet_id=spreadsheet_id,
            sheet_name=sheet_name,
            column_mapping=column_mapping,
            access_token=tokens["access_token"],
            refresh_token=tokens["refresh_token"],
            token_expiry=tokens.get("token_expiry"),
            google_email=tokens.get("google_email"),
            deal_id=deal_id,
            sync_frequency=sync_frequency,
            sync_enabled=sync_enabled,
            created_by=created_by,
        )

    async def disconnect(self, connection_id: str) -> None:
        """
        Delete a connection. The token is revoked only when no other
        connection of the fund still uses the same Google account.
        """
        connection = self.store.get(connection_id)
        shares_account = any(
            other.id != connection.id and other.google_email == connection.google_email
            for other in self.store.list_for_fund(connection.fund_id)
        )

        refresh_token = None
        if connection.credentials_encrypted and not shares_account:
            try:
                refresh_token = self.store.get_tokens(connection).get("refresh_token")
            except CredentialError:
                logger.warning(f"[GoogleSheets] Credentials for {connection_id} unreadable, skipping revoke")

        self.store.delete(connection_id)

        if refresh_token:
            await self.connector.revoke_token(refresh_token)


def get_setup_service(session: Session, connector: Optional[GoogleSheetsConnector] = None) -> GoogleSheetsSetupService:
    """Factory function to get setup service instance"""
    return GoogleSheetsSetupService(session, connector)
