"""Database models for external spreadsheet connections (Google Sheets)"""
import uuid
from datetime import datetime, timedelta
from sqlmodel import SQLModel, Field, Column
from sqlalchemy import Text, JSON, String
from typing import Optional, List
from enum import Enum


class ConnectionProvider(str, Enum):
    """Supported spreadsheet providers"""
    GOOGLE_SHEETS = "google_sheets"


class SyncFrequency(str, Enum):
    """How often a connection is synced by the scheduler"""
    OFF = "off"
    MINUTES_5 = "5m"
    MINUTES_15 = "15m"
    MINUTES_30 = "30m"
    HOURLY = "1h"
    HOURS_6 = "6h"
    DAILY = "24h"


# Interval per frequency; OFF is never scheduled
SYNC_FREQUENCY_MINUTES = {
    SyncFrequency.MINUTES_5: 5,
    SyncFrequency.MINUTES_15: 15,
    SyncFrequency.MINUTES_30: 30,
    SyncFrequency.HOURLY: 60,
    SyncFrequency.HOURS_6: 360,
    SyncFrequency.DAILY: 1440,
}


class ConnectionSyncStatus(str, Enum):
    """Last-known sync state of a connection"""
    PENDING = "pending"
    SYNCING = "syncing"  # Transient, always followed by SUCCESS or ERROR
    SUCCESS = "success"
    ERROR = "error"


class SyncRunStatus(str, Enum):
    """Status of a single sync run in the audit log"""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncTrigger(str, Enum):
    """What started a sync run"""
    SCHEDULER = "scheduler"
    MANUAL = "manual"


class DataConnection(SQLModel, table=True):
    """
    One configured link between a fund (optionally a deal) and a spreadsheet tab.
    Holds credentials, column mapping, schedule and last-known sync state.
    """
    __tablename__ = "data_connections"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    fund_id: str = Field(index=True, max_length=255)
    deal_id: Optional[str] = Field(default=None, foreign_key="deals.id", index=True)

    provider: ConnectionProvider = Field(
        default=ConnectionProvider.GOOGLE_SHEETS,
        sa_column=Column(String(50), index=True),
    )
    name: str = Field(max_length=500)

    # Spreadsheet identification
    spreadsheet_id: str = Field(max_length=255)
    sheet_name: str = Field(max_length=255)
    google_email: Optional[str] = Field(default=None, max_length=320)

    # OAuth tokens, Fernet-encrypted JSON blob (see utils.encryption)
    credentials_encrypted: Optional[str] = Field(default=None, sa_column=Column(Text))
    token_expiry: Optional[datetime] = Field(default=None)

    # User-confirmed mapping, ordered
    column_mapping: Optional[List[dict]] = Field(default=None, sa_column=Column(JSON))
    # e.g., [{"source_column": "NOI", "kpi_code": "noi", "data_type": "actual", "value_type": "currency"}]

    # Schedule
    sync_frequency: SyncFrequency = Field(
        default=SyncFrequency.OFF,
        sa_column=Column(String(10)),
    )
    sync_enabled: bool = Field(default=False)

    # Sync state
    sync_status: ConnectionSyncStatus = Field(
        default=ConnectionSyncStatus.PENDING,
        sa_column=Column(String(20), index=True),
    )
    sync_error: Optional[str] = Field(default=None, sa_column=Column(Text))
    last_synced_at: Optional[datetime] = Field(default=None)
    last_sync_row_count: Optional[int] = Field(default=None)
    next_sync_at: Optional[datetime] = Field(default=None, index=True)  # NULL = not scheduled

    # Metadata
    created_by: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def is_scheduled(self) -> bool:
        """Check if the scheduler should ever pick this connection up"""
        return bool(self.sync_enabled) and self.sync_frequency != SyncFrequency.OFF

    def needs_token_refresh(self, buffer_minutes: int = 5, now: Optional[datetime] = None) -> bool:
        """Check if token needs refresh (within buffer of expiry)"""
        if not self.token_expiry:
            return True
        now = now or datetime.utcnow()
        return now + timedelta(minutes=buffer_minutes) >= self.token_expiry


class DataConnectionSyncLog(SQLModel, table=True):
    """
    Tracks individual sync runs for audit and debugging.
    """
    __tablename__ = "data_connection_sync_logs"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    connection_id: str = Field(foreign_key="data_connections.id", index=True)
    fund_id: str = Field(index=True, max_length=255)

    trigger: SyncTrigger = Field(default=SyncTrigger.SCHEDULER, sa_column=Column(String(20)))
    sync_status: SyncRunStatus = Field(default=SyncRunStatus.IN_PROGRESS, sa_column=Column(String(20)))

    # Results
    row_count: int = Field(default=0)
    kpi_count: int = Field(default=0)
    skipped_entries: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))

    # Timing
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = Field(default=None)

    # Error tracking
    error_message: Optional[str] = Field(default=None, sa_column=Column(Text))
