"""
Google Sheets Sync Service.
Fetches a connection's sheet, resolves each mapped column to a value and
upserts the values as KPI data points.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from database.models.connector import (
    DataConnection,
    DataConnectionSyncLog,
    SyncRunStatus,
    SyncTrigger,
)
from database.models.kpi import fund_level_deal_id
from services.connectors.googlesheets.client import GoogleSheetsConnector
from services.connectors.googlesheets.connection_store import ConnectionStore
from services.connectors.googlesheets.errors import (
    SyncError,
    TokenExpiredError,
    MappingResolutionMiss,
    PersistenceError,
    ConnectionBusyError,
)
from services.kpis.kpi_service import KpiService, period_start
from services.sheets.heuristics import is_empty_row
from services.sheets.lookup import default_strategies, resolve_value, is_numeric_cell, is_non_empty_cell
from services.sheets.models import ValueType
from services.sheets.value_parser import parse_value
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class SyncResult:
    """Outcome of one successful sync"""
    connection_id: str
    row_count: int
    kpi_count: int
    skipped: List[str] = field(default_factory=list)
    values: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "row_count": self.row_count,
            "kpi_count": self.kpi_count,
            "skipped": list(self.skipped),
        }


class SheetsSyncService:
    """
    Service for syncing Google Sheets data into KPI data points.
    """

    def __init__(self, session: Session, connector: Optional[GoogleSheetsConnector] = None):
        """
        Initialize sync service.

        Args:
            session: Database session
            connector: Google API client (a default one is created if omitted)
        """
        self.session = session
        self.connector = connector or GoogleSheetsConnector()
        self.store = ConnectionStore(session)
        self.kpis = KpiService(session)

    async def run_sync(
        self,
        connection_id: str,
        now: Optional[datetime] = None,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
    ) -> SyncResult:
        """
        Claim a connection, sync it and persist its terminal state.

        Args:
            connection_id: ID of the DataConnection record
            now: Run time (defaults to utcnow)
            trigger: Scheduler tick or manual request

        Returns:
            SyncResult with row and KPI counts

        Raises:
            ConnectionNotFoundError: If the connection does not exist
            ConnectionBusyError: If a sync is already running for it
            SyncError: If the sync failed (state is already persisted as error)
        """
        now = now or datetime.utcnow()
        trigger = SyncTrigger(trigger)

        connection = self.store.get(connection_id)
        if not self.store.claim_for_sync(connection_id, now):
            logger.warning(f"[SheetsSync] Connection {connection_id} is already syncing")
            raise ConnectionBusyError(f"Connection {connection_id} is already syncing")

        # Once claimed, every path below must leave the connection in success or error
        sync_log: Optional[DataConnectionSyncLog] = None
        try:
            self.session.refresh(connection)
            logger.info(f"[SheetsSync] === STARTING SYNC ({trigger.value}) ===")
            logger.info(f"[SheetsSync] Connection: {connection.name} ({connection.id}), sheet '{connection.sheet_name}'")

            new_log = DataConnectionSyncLog(
                connection_id=connection.id,
                fund_id=connection.fund_id,
                trigger=trigger.value,
                sync_status=SyncRunStatus.IN_PROGRESS.value,
                started_at=now,
            )
            self.session.add(new_log)
            self.session.commit()
            self.session.refresh(new_log)
            sync_log = new_log

            result = await self.sync(connection, now)

            self.store.mark_success(connection, result.row_count, now)

            sync_log.sync_status = SyncRunStatus.COMPLETED.value
            sync_log.completed_at = datetime.utcnow()
            sync_log.row_count = result.row_count
            sync_log.kpi_count = result.kpi_count
            sync_log.skipped_entries = result.skipped
            self.session.add(sync_log)
            self.session.commit()
        except Exception as e:
            # Tenant-visible message: exception text only, no traceback
            message = str(e) if isinstance(e, SyncError) else f"Unexpected sync error ({type(e).__name__})"
            logger.error(f"[SheetsSync] === SYNC FAILED === {connection_id}: {message}", exc_info=True)
            self._record_failure(connection, sync_log, message, now)
            raise

        logger.info("[SheetsSync] === SYNC COMPLETE ===")
        logger.info(f"[SheetsSync] Rows: {result.row_count}, KPIs written: {result.kpi_count}, skipped: {result.skipped}")
        logger.info(f"[SheetsSync] Next sync at: {connection.next_sync_at}")
        return result

    def _record_failure(
        self,
        connection: DataConnection,
        sync_log: Optional[DataConnectionSyncLog],
        message: str,
        now: datetime,
    ) -> None:
        """Persist the error state of a claimed connection; a failure here is logged, not raised"""
        try:
            self.session.rollback()
            self.store.mark_error(connection, message, now)

            if sync_log is not None:
                sync_log.sync_status = SyncRunStatus.FAILED.value
                sync_log.completed_at = datetime.utcnow()
                sync_log.error_message = message
                self.session.add(sync_log)
                self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"[SheetsSync] Could not record failure for connection {connection.id}: {type(e).__name__}: {e}")

    async def sync(self, connection: DataConnection, now: Optional[datetime] = None) -> SyncResult:
        """
        Sync one connection without touching its sync state.

        Raises:
            CredentialError: Token refresh failed
            SourceUnavailableError: The sheet could not be fetched
        """
        now = now or datetime.utcnow()
        tokens = self.store.get_tokens(connection)

        if self.store.needs_token_refresh(connection, now):
            logger.info("[SheetsSync] Token needs refresh, refreshing...")
            tokens = await self._refresh_token(connection, tokens)

        grid = await self._fetch_grid(connection, tokens)
        row_count = sum(1 for row in grid if not is_empty_row(row))
        logger.info(f"[SheetsSync] Fetched {row_count} non-empty rows")

        strategies = default_strategies(grid)
        deal_id = connection.deal_id or fund_level_deal_id(connection.fund_id)
        period_date = period_start(now)

        values: Dict[str, float] = {}
        skipped: List[str] = []
        kpi_count = 0

        for entry in connection.column_mapping or []:
            source = entry.get("source_column", "")
            kpi_code = entry.get("kpi_code", "")
            try:
                value = self._resolve_entry(grid, strategies, entry)
                self._write_data_point(entry, deal_id, value, period_date, connection.id, now)
            except MappingResolutionMiss as e:
                logger.info(f"[SheetsSync] Skipping mapping: {e}")
                skipped.append(source)
                continue
            except PersistenceError as e:
                logger.error(f"[SheetsSync] Error writing {kpi_code}: {e}", exc_info=True)
                skipped.append(source)
                continue

            values[kpi_code] = value
            kpi_count += 1

        if connection.deal_id and values:
            try:
                self.kpis.update_deal_headlines(connection.deal_id, values, now)
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.warning(f"[SheetsSync] Headline update failed for deal {connection.deal_id}: {e}")

        return SyncResult(
            connection_id=connection.id,
            row_count=row_count,
            kpi_count=kpi_count,
            skipped=skipped,
            values=values,
        )

    def _resolve_entry(self, grid, strategies, entry: Dict[str, Any]) -> float:
        """Find and parse one mapped value, raising MappingResolutionMiss if absent"""
        source = entry.get("source_column", "")
        kpi_code = entry.get("kpi_code", "")
        value_type = entry.get("value_type") or ValueType.NUMBER.value

        accept = is_non_empty_cell if value_type == ValueType.BOOLEAN.value else is_numeric_cell
        raw = resolve_value(grid, source, strategies, accept)
        if raw is None:
            raise MappingResolutionMiss(source, kpi_code)

        parsed = parse_value(raw, value_type)
        if isinstance(parsed, bool):
            return 1.0 if parsed else 0.0
        if not isinstance(parsed, float):
            # Text values have no numeric KPI representation
            raise MappingResolutionMiss(source, kpi_code)
        return parsed

    def _write_data_point(
        self,
        entry: Dict[str, Any],
        deal_id: str,
        value: float,
        period_date,
        connection_id: str,
        now: datetime,
    ) -> None:
        kpi_code = entry.get("kpi_code", "")
        try:
            definition = self.kpis.get_or_create_definition(kpi_code, entry.get("custom_name"))
            if definition is None:
                raise MappingResolutionMiss(entry.get("source_column", ""), kpi_code)
            self.kpis.upsert_data_point(
                deal_id=deal_id,
                kpi_id=definition.id,
                period_date=period_date,
                value=value,
                data_type=entry.get("data_type") or "actual",
                source_ref=connection_id,
                now=now,
            )
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Could not store {kpi_code}: {type(e).__name__}") from e

    async def _refresh_token(self, connection: DataConnection, tokens: Dict[str, str]) -> Dict[str, str]:
        """Refresh the OAuth token and store it on the connection"""
        token_data = await self.connector.refresh_access_token(tokens.get("refresh_token"))
        self.store.store_tokens(
            connection,
            token_data["access_token"],
            token_data["refresh_token"],
            token_data.get("expires_at"),
        )
        logger.info(f"[SheetsSync] Refreshed token for connection {connection.id}")
        return {"access_token": token_data["access_token"], "refresh_token": token_data["refresh_token"]}

    async def _fetch_grid(self, connection: DataConnection, tokens: Dict[str, str]) -> List[List[str]]:
        """Fetch the sheet, refreshing once if the provider rejects the access token"""
        try:
            return await self.connector.fetch_grid(
                tokens["access_token"], connection.spreadsheet_id, connection.sheet_name
            )
        except TokenExpiredError:
            logger.info("[SheetsSync] Access token rejected, refreshing and retrying once")
            tokens = await self._refresh_token(connection, tokens)
            return await self.connector.fetch_grid(
                tokens["access_token"], connection.spreadsheet_id, connection.sheet_name
            )


def get_sheets_sync_service(session: Session, connector: Optional[GoogleSheetsConnector] = None) -> SheetsSyncService:
    """Factory function to get sync service instance"""
    return SheetsSyncService(session, connector)
