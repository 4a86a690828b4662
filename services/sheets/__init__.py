"""
Spreadsheet analysis: value parsing, section detection, metric extraction,
mapping suggestions and sync-time value lookup.

Usage:
    from services.sheets import detect_sections, build_preview, parse_numeric

    sections = detect_sections(grid)
    preview = build_preview(grid, max_rows=200)
"""
from services.sheets.models import (
    SectionKind,
    SheetFormat,
    MetricType,
    ValueType,
    SheetMetric,
    SheetSection,
    SheetPreview,
    SheetInfo,
)
from services.sheets.value_parser import parse_numeric, parse_boolean, parse_value
from services.sheets.section_detector import detect_sections, detect_simple_format, build_preview
from services.sheets.metric_extractor import extract_metrics
from services.sheets.mapping_resolver import (
    KpiCatalogueEntry,
    MappingSuggestion,
    suggest_kpi,
    suggest_mappings,
    synthesize_kpi_code,
    normalize_mapping,
    normalize_mapping_entry,
)
from services.sheets.lookup import (
    LookupStrategy,
    KeyValueLookup,
    TabularLookup,
    find_header_rows,
    resolve_value,
)

__all__ = [
    # Models
    "SectionKind",
    "SheetFormat",
    "MetricType",
    "ValueType",
    "SheetMetric",
    "SheetSection",
    "SheetPreview",
    "SheetInfo",
    # Parsing
    "parse_numeric",
    "parse_boolean",
    "parse_value",
    # Detection
    "detect_sections",
    "detect_simple_format",
    "build_preview",
    "extract_metrics",
    # Mapping
    "KpiCatalogueEntry",
    "MappingSuggestion",
    "suggest_kpi",
    "suggest_mappings",
    "synthesize_kpi_code",
    "normalize_mapping",
    "normalize_mapping_entry",
    # Lookup
    "LookupStrategy",
    "KeyValueLookup",
    "TabularLookup",
    "find_header_rows",
    "resolve_value",
]
