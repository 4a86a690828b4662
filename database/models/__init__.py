from database.models.kpi import (
    Deal,
    KpiDefinition,
    KpiDataPoint,
    KpiPeriodType,
    KpiDataType,
    KpiSource,
    KpiFormat,
    CUSTOM_KPI_CATEGORY,
    fund_level_deal_id,
)
from database.models.connector import (
    ConnectionProvider,
    SyncFrequency,
    SYNC_FREQUENCY_MINUTES,
    ConnectionSyncStatus,
    SyncRunStatus,
    SyncTrigger,
    DataConnection,
    DataConnectionSyncLog,
)

__all__ = [
    # KPI models
    "Deal",
    "KpiDefinition",
    "KpiDataPoint",
    "KpiPeriodType",
    "KpiDataType",
    "KpiSource",
    "KpiFormat",
    "CUSTOM_KPI_CATEGORY",
    "fund_level_deal_id",
    # Connection models
    "ConnectionProvider",
    "SyncFrequency",
    "SYNC_FREQUENCY_MINUTES",
    "ConnectionSyncStatus",
    "SyncRunStatus",
    "SyncTrigger",
    "DataConnection",
    "DataConnectionSyncLog",
]
