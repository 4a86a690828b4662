"""
Mapping suggestions and normalisation of user-confirmed column mappings.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Iterable, Any

from database.models.kpi import KpiDataType
from services.sheets.models import SheetMetric, ValueType

CUSTOM_KPI_PREFIX = "custom_"


@dataclass
class KpiCatalogueEntry:
    code: str
    name: str


@dataclass
class MappingSuggestion:
    """Advisory match shown in the wizard; never persisted as-is"""
    source_column: str
    sample_value: str
    suggested_kpi_code: Optional[str]
    section_name: str
    metric_type: str
    row_index: int
    column_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_column": self.source_column,
            "sample_value": self.sample_value,
            "suggested_kpi_code": self.suggested_kpi_code,
            "section_name": self.section_name,
            "metric_type": self.metric_type,
            "row_index": self.row_index,
            "column_index": self.column_index,
        }


def _matches(key: str, kpi: KpiCatalogueEntry) -> bool:
    code = kpi.code.lower()
    name = kpi.name.lower()
    return key == code or key in name or code in key or name in key


def suggest_kpi(key: str, catalogue: Iterable[KpiCatalogueEntry]) -> Optional[KpiCatalogueEntry]:
    """
    First catalogue entry matching a metric key (case-insensitive): key equals
    the code, the name contains the key, or the key contains the code or name.
    """
    normalized = key.strip().lower()
    if not normalized:
        return None
    for kpi in catalogue:
        if _matches(normalized, kpi):
            return kpi
    return None


def suggest_mappings(
    metrics: List[SheetMetric],
    catalogue: List[KpiCatalogueEntry],
) -> List[MappingSuggestion]:
    suggestions = []
    for metric in metrics:
        kpi = suggest_kpi(metric.key, catalogue)
        suggestions.append(MappingSuggestion(
            source_column=metric.key,
            sample_value=metric.value,
            suggested_kpi_code=kpi.code if kpi else None,
            section_name=metric.section_name,
            metric_type=metric.metric_type.value,
            row_index=metric.row_index,
            column_index=metric.column_index,
        ))
    return suggestions


def synthesize_kpi_code(custom_name: str) -> str:
    """Derive a KPI code from a custom metric name: "Pet Fees" -> "custom_pet_fees" """
    slug = re.sub(r"\s+", "_", custom_name.strip().lower())
    return f"{CUSTOM_KPI_PREFIX}{slug}"


def normalize_mapping_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate one mapping entry and fill in its KPI code.

    An entry targets either an existing kpi_code or a custom_name; a custom
    name gets a synthesized code. Raises ValueError on an unusable entry.
    """
    source_column = str(entry.get("source_column") or "").strip()
    if not source_column:
        raise ValueError("Mapping entry is missing source_column")

    custom_name = (entry.get("custom_name") or "").strip() or None
    kpi_code = (entry.get("kpi_code") or "").strip() or None
    if not kpi_code and not custom_name:
        raise ValueError(f"Mapping entry for '{source_column}' needs a kpi_code or custom_name")
    if not kpi_code:
        kpi_code = synthesize_kpi_code(custom_name)

    data_type = entry.get("data_type") or KpiDataType.ACTUAL.value
    value_type = entry.get("value_type") or ValueType.NUMBER.value
    # Enum lookups raise ValueError for unknown values
    data_type = KpiDataType(data_type).value
    value_type = ValueType(value_type).value

    return {
        "source_column": source_column,
        "kpi_code": kpi_code,
        "custom_name": custom_name,
        "data_type": data_type,
        "value_type": value_type,
    }


def normalize_mapping(entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Normalise a full mapping, keeping the user's order"""
    return [normalize_mapping_entry(entry) for entry in entries]
