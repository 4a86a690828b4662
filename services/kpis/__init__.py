from services.kpis.kpi_service import (
    KpiService,
    get_kpi_service,
    period_start,
    HEADLINE_KPI_CODES,
    CURRENT_VALUE_KPI_CODE,
)

__all__ = [
    "KpiService",
    "get_kpi_service",
    "period_start",
    "HEADLINE_KPI_CODES",
    "CURRENT_VALUE_KPI_CODE",
]
