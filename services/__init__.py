from services.sheets import build_preview, detect_sections, parse_numeric, resolve_value
from services.kpis import KpiService, get_kpi_service

__all__ = [
    # Sheet analysis
    "build_preview",
    "detect_sections",
    "parse_numeric",
    "resolve_value",
    # KPI persistence
    "KpiService",
    "get_kpi_service",
]
