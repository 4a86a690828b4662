"""
Connection state store for Google Sheets connections.
Owns every write to data_connections: creation, credentials, mapping,
schedule and sync state.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any

from sqlalchemy import delete, update, or_
from sqlmodel import Session, select

from config.settings import TOKEN_REFRESH_BUFFER_MINUTES
from database.models.connector import (
    ConnectionProvider,
    ConnectionSyncStatus,
    DataConnection,
    DataConnectionSyncLog,
    SyncFrequency,
    SYNC_FREQUENCY_MINUTES,
)
from services.connectors.googlesheets.errors import ConnectionNotFoundError, CredentialError
from services.sheets.mapping_resolver import normalize_mapping
from utils.encryption import encrypt_credentials, decrypt_credentials
from utils.logger import get_logger

logger = get_logger(__name__)

STALE_LOCK_MESSAGE = "Sync interrupted by a restart (stale lock); will retry on schedule"


def compute_next_sync_at(frequency, enabled: bool, now: datetime) -> Optional[datetime]:
    """now + frequency interval, or None when the connection is not scheduled"""
    if not enabled:
        return None
    try:
        frequency = SyncFrequency(frequency)
    except ValueError:
        return None
    minutes = SYNC_FREQUENCY_MINUTES.get(frequency)
    if not minutes:
        return None
    return now + timedelta(minutes=minutes)


class ConnectionStore:
    """
    Data access for DataConnection records.
    """

    def __init__(self, session: Session):
        """
        Initialize connection store.

        Args:
            session: Database session
        """
        self.session = session

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, connection_id: str) -> DataConnection:
        connection = self.session.get(DataConnection, connection_id)
        if not connection:
            raise ConnectionNotFoundError(f"Connection not found: {connection_id}")
        return connection

    def list_for_fund(self, fund_id: str) -> List[DataConnection]:
        return list(self.session.exec(
            select(DataConnection)
            .where(DataConnection.fund_id == fund_id)
            .where(DataConnection.provider == ConnectionProvider.GOOGLE_SHEETS.value)
            .order_by(DataConnection.created_at.desc())
        ).all())

    def list_due(self, now: datetime) -> List[DataConnection]:
        """
        Connections the scheduler should sync at `now`: enabled, not off,
        not already syncing, and never synced or past their next run time.
        """
        return list(self.session.exec(
            select(DataConnection)
            .where(DataConnection.sync_enabled == True)  # noqa: E712
            .where(DataConnection.sync_frequency != SyncFrequency.OFF.value)
            .where(DataConnection.sync_status != ConnectionSyncStatus.SYNCING.value)
            .where(or_(DataConnection.next_sync_at.is_(None), DataConnection.next_sync_at <= now))
            .order_by(DataConnection.next_sync_at)
        ).all())

    def get_status(self, fund_id: str) -> Dict[str, Any]:
        """Connection summary for a fund, as shown on the data sync page"""
        connections = self.list_for_fund(fund_id)
        with_credentials = [c for c in connections if c.credentials_encrypted]
        return {
            "connected": bool(connections),
            "connection_count": len(connections),
            "has_credentials": bool(with_credentials),
            "google_email": with_credentials[0].google_email if with_credentials else None,
            "last_synced_at": max(
                (c.last_synced_at for c in connections if c.last_synced_at), default=None
            ),
        }

    # =========================================================================
    # Credentials
    # =========================================================================

    def get_tokens(self, connection: DataConnection) -> Dict[str, str]:
        if not connection.credentials_encrypted:
            raise CredentialError("Connection has no stored credentials")
        try:
            return decrypt_credentials(connection.credentials_encrypted)
        except ValueError as e:
            raise CredentialError(str(e))

    def store_tokens(
        self,
        connection: DataConnection,
        access_token: str,
        refresh_token: str,
        token_expiry: Optional[datetime],
    ) -> DataConnection:
        connection.credentials_encrypted = encrypt_credentials(access_token, refresh_token)
        connection.token_expiry = token_expiry
        connection.updated_at = datetime.utcnow()
        self.session.add(connection)
        self.session.commit()
        self.session.refresh(connection)
        return connection

    def get_existing_credentials(self, fund_id: str) -> Optional[Dict[str, Any]]:
        """
        Credentials of the fund's most recent connection, for reuse when adding
        another sheet without re-running OAuth.
        """
        for connection in self.list_for_fund(fund_id):
            if not connection.credentials_encrypted:
                continue
            try:
                tokens = decrypt_credentials(connection.credentials_encrypted)
            except ValueError:
                logger.warning(f"[ConnectionStore] Unreadable credentials on connection {connection.id}")
                continue
            return {
                **tokens,
                "token_expiry": connection.token_expiry,
                "google_email": connection.google_email,
                "connection_id": connection.id,
            }
        return None

    def needs_token_refresh(self, connection: DataConnection, now: Optional[datetime] = None) -> bool:
        return connection.needs_token_refresh(TOKEN_REFRESH_BUFFER_MINUTES, now)

    # =========================================================================
    # Create / update / delete
    # =========================================================================

    def save_connection(
        self,
        fund_id: str,
        name: str,
        spreadsheet_id: str,
        sheet_name: str,
        column_mapping: List[Dict[str, Any]],
        access_token: str,
        refresh_token: str,
        token_expiry: Optional[datetime] = None,
        google_email: Optional[str] = None,
        deal_id: Optional[str] = None,
        sync_frequency: str = SyncFrequency.OFF.value,
        sync_enabled: bool = False,
        created_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DataConnection:
        """Create a connection from a completed setup wizard"""
        now = now or datetime.utcnow()
        sync_frequency = SyncFrequency(sync_frequency).value
        sync_enabled = sync_enabled and sync_frequency != SyncFrequency.OFF.value

        connection = DataConnection(
            fund_id=fund_id,
            deal_id=deal_id,
            provider=ConnectionProvider.GOOGLE_SHEETS.value,
            name=name,
            spreadsheet_id=spreadsheet_id,
            sheet_name=sheet_name,
            google_email=google_email,
            credentials_encrypted=encrypt_credentials(access_token, refresh_token),
            token_expiry=token_expiry,
            column_mapping=normalize_mapping(column_mapping),
            sync_frequency=sync_frequency,
            sync_enabled=sync_enabled,
            sync_status=ConnectionSyncStatus.PENDING.value,
            next_sync_at=compute_next_sync_at(sync_frequency, sync_enabled, now),
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self.session.add(connection)
        self.session.commit()
        self.session.refresh(connection)

        logger.info(
            f"[ConnectionStore] Saved connection {connection.id} for fund {fund_id}: "
            f"'{spreadsheet_id}' / '{sheet_name}', {len(connection.column_mapping)} mapped columns"
        )
        return connection

    def update_mapping(self, connection_id: str, column_mapping: List[Dict[str, Any]]) -> DataConnection:
        connection = self.get(connection_id)
        connection.column_mapping = normalize_mapping(column_mapping)
        connection.updated_at = datetime.utcnow()
        self.session.add(connection)
        self.session.commit()
        self.session.refresh(connection)
        logger.info(f"[ConnectionStore] Updated mapping for {connection_id}: {len(connection.column_mapping)} columns")
        return connection

    def update_schedule(
        self,
        connection_id: str,
        sync_frequency: str,
        sync_enabled: bool,
        now: Optional[datetime] = None,
    ) -> DataConnection:
        """Change frequency/enabled; next_sync_at is recomputed from now"""
        now = now or datetime.utcnow()
        connection = self.get(connection_id)
        connection.sync_frequency = SyncFrequency(sync_frequency).value
        connection.sync_enabled = bool(sync_enabled) and connection.sync_frequency != SyncFrequency.OFF.value
        connection.next_sync_at = compute_next_sync_at(connection.sync_frequency, connection.sync_enabled, now)
        connection.updated_at = now
        self.session.add(connection)
        self.session.commit()
        self.session.refresh(connection)
        logger.info(
            f"[ConnectionStore] Schedule for {connection_id}: {connection.sync_frequency}, "
            f"enabled={connection.sync_enabled}, next={connection.next_sync_at}"
        )
        return connection

    def delete(self, connection_id: str) -> None:
        """Hard delete a connection and its sync history"""
        connection = self.get(connection_id)
        self.session.execute(delete(DataConnectionSyncLog).where(DataConnectionSyncLog.connection_id == connection_id))
        self.session.delete(connection)
        self.session.commit()
        logger.info(f"[ConnectionStore] Deleted connection {connection_id}")

    # =========================================================================
    # Sync state
    # =========================================================================

    def claim_for_sync(self, connection_id: str, now: datetime) -> bool:
        """
        Move a connection to syncing unless it already is.
        Single conditional UPDATE, so two callers cannot both claim it.

        Returns:
            True if this caller now owns the sync
        """
        result = self.session.execute(
            update(DataConnection)
            .where(DataConnection.id == connection_id)
            .where(DataConnection.sync_status != ConnectionSyncStatus.SYNCING.value)
            .values(sync_status=ConnectionSyncStatus.SYNCING.value, updated_at=now)
        )
        self.session.commit()
        return result.rowcount == 1

    def mark_success(self, connection: DataConnection, row_count: int, now: datetime) -> DataConnection:
        connection.sync_status = ConnectionSyncStatus.SUCCESS.value
        connection.sync_error = None
        connection.last_synced_at = now
        connection.last_sync_row_count = row_count
        connection.next_sync_at = compute_next_sync_at(connection.sync_frequency, connection.sync_enabled, now)
        connection.updated_at = now
        self.session.add(connection)
        self.session.commit()
        self.session.refresh(connection)
        return connection

    def mark_error(self, connection: DataConnection, message: str, now: datetime) -> DataConnection:
        """Terminal error state; still scheduled so the next natural run retries"""
        connection.sync_status = ConnectionSyncStatus.ERROR.value
        connection.sync_error = message
        connection.next_sync_at = compute_next_sync_at(connection.sync_frequency, connection.sync_enabled, now)
        connection.updated_at = now
        self.session.add(connection)
        self.session.commit()
        self.session.refresh(connection)
        return connection

    def reconcile_stale_locks(self, process_started_at: datetime, now: Optional[datetime] = None) -> int:
        """
        Reset connections left in syncing by an earlier process.

        Returns:
            Number of connections moved to error
        """
        now = now or datetime.utcnow()
        stale = self.session.exec(
            select(DataConnection)
            .where(DataConnection.sync_status == ConnectionSyncStatus.SYNCING.value)
            .where(DataConnection.updated_at < process_started_at)
        ).all()

        for connection in stale:
            connection.sync_status = ConnectionSyncStatus.ERROR.value
            connection.sync_error = STALE_LOCK_MESSAGE
            # Due again right away if it is scheduled at all
            connection.next_sync_at = now if connection.is_scheduled() else None
            connection.updated_at = now
            self.session.add(connection)

        if stale:
            self.session.commit()
            logger.warning(f"[ConnectionStore] Reconciled {len(stale)} stale syncing connection(s)")
        return len(stale)


def get_connection_store(session: Session) -> ConnectionStore:
    """Factory function to get connection store instance"""
    return ConnectionStore(session)
