"""Pydantic schemas for Google Sheets connector API endpoints"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from database.models.connector import SyncFrequency, ConnectionSyncStatus
from database.models.kpi import KpiDataType
from services.sheets.models import ValueType


# ============================================================================
# Info & OAuth Schemas
# ============================================================================

class ConnectorInfoResponse(BaseModel):
    """Connector info and configuration status"""
    provider: str
    display_name: str
    description: str
    is_configured: bool
    scheduler_running: bool = False


class OAuthStartResponse(BaseModel):
    """Response for starting OAuth flow"""
    authorization_url: str
    state: str


# ============================================================================
# Discovery Schemas
# ============================================================================

class SpreadsheetInfo(BaseModel):
    """A spreadsheet visible to the connected Google account"""
    id: str
    name: str
    owner: Optional[str] = None
    modified_time: Optional[str] = None


class SpreadsheetListResponse(BaseModel):
    spreadsheets: List[SpreadsheetInfo]


class SheetInfoResponse(BaseModel):
    """One tab of a spreadsheet"""
    model_config = ConfigDict(from_attributes=True)

    sheet_id: int
    title: str
    row_count: int = 0
    column_count: int = 0


class SheetListResponse(BaseModel):
    sheets: List[SheetInfoResponse]


class SheetMetricResponse(BaseModel):
    key: str
    value: str
    row_index: int
    column_index: Optional[int] = None
    section_name: str
    metric_type: str


class SheetSectionResponse(BaseModel):
    name: str
    kind: str
    start_row: int
    end_row: int
    metrics: List[SheetMetricResponse]
    column_headers: Optional[List[str]] = None
    data_rows: Optional[List[List[str]]] = None


class SheetPreviewData(BaseModel):
    headers: List[str]
    rows: List[List[str]]
    total_rows: int
    format: str
    sections: List[SheetSectionResponse] = []


class MappingSuggestionResponse(BaseModel):
    """Advisory KPI match for one extracted metric"""
    source_column: str
    sample_value: str
    suggested_kpi_code: Optional[str] = None
    section_name: str
    metric_type: str
    row_index: int
    column_index: Optional[int] = None


class SheetPreviewResponse(BaseModel):
    preview: SheetPreviewData
    suggestions: List[MappingSuggestionResponse]


# ============================================================================
# Connection Schemas
# ============================================================================

class ColumnMappingEntry(BaseModel):
    """User-confirmed link from a sheet column/label to a KPI"""
    source_column: str = Field(..., min_length=1)
    kpi_code: Optional[str] = None
    custom_name: Optional[str] = None
    data_type: KpiDataType = KpiDataType.ACTUAL
    value_type: ValueType = ValueType.NUMBER

    @model_validator(mode="after")
    def check_target(self):
        if not (self.kpi_code or self.custom_name):
            raise ValueError("Either kpi_code or custom_name is required")
        return self


class ConnectionCreateRequest(BaseModel):
    """Request body for saving a connection from the wizard"""
    fund_id: str
    deal_id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=500)
    spreadsheet_id: str
    sheet_name: str
    column_mapping: List[ColumnMappingEntry]
    sync_frequency: SyncFrequency = SyncFrequency.OFF
    sync_enabled: bool = False
    # Encrypted tokens from the OAuth callback; omitted to reuse the fund's credentials
    connection_data: Optional[str] = None
    created_by: Optional[str] = None


class ConnectionResponse(BaseModel):
    """Connection as shown to the tenant; never includes credentials"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    fund_id: str
    deal_id: Optional[str] = None
    name: str
    spreadsheet_id: str
    sheet_name: str
    google_email: Optional[str] = None
    column_mapping: Optional[List[Dict[str, Any]]] = None
    sync_frequency: str
    sync_enabled: bool
    sync_status: str
    sync_error: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    last_sync_row_count: Optional[int] = None
    next_sync_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ConnectionListResponse(BaseModel):
    connections: List[ConnectionResponse]
    total: int


class FundStatusResponse(BaseModel):
    """Google Sheets status for a fund"""
    connected: bool
    connection_count: int
    has_credentials: bool
    google_email: Optional[str] = None
    last_synced_at: Optional[datetime] = None


class MappingUpdateRequest(BaseModel):
    column_mapping: List[ColumnMappingEntry]


class ScheduleUpdateRequest(BaseModel):
    sync_frequency: SyncFrequency
    sync_enabled: bool = True


# ============================================================================
# Sync Schemas
# ============================================================================

class SyncResultResponse(BaseModel):
    """Result of a manual or forced sync"""
    connection_id: str
    row_count: int
    kpi_count: int
    skipped: List[str] = []
    sync_status: ConnectionSyncStatus = ConnectionSyncStatus.SUCCESS
    next_sync_at: Optional[datetime] = None


class TickResultResponse(BaseModel):
    """Result of one scheduler tick"""
    processed: int
    succeeded: int
    failed: int
    busy: int = 0
    skipped: bool = False
