"""
Data models for spreadsheet analysis.
These are transient: built from a raw grid, never persisted.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any


class SectionKind(str, Enum):
    """Layout style of a detected section"""
    KEY_VALUE = "key-value"
    TABULAR = "tabular"


class SheetFormat(str, Enum):
    """Overall layout of a sheet, reported by the preview"""
    KEY_VALUE = "key-value"
    TABULAR = "tabular"
    MIXED = "mixed"


class MetricType(str, Enum):
    SUMMARY = "summary"  # One value per sheet (fund-level fact)
    DETAIL = "detail"    # One value per row (asset-level fact)


class ValueType(str, Enum):
    """Parse hint carried by a mapping entry"""
    NUMBER = "number"
    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    BOOLEAN = "boolean"
    TEXT = "text"


@dataclass
class SheetMetric:
    """One named, value-bearing unit found during extraction"""
    key: str
    value: str
    row_index: int
    section_name: str
    metric_type: MetricType
    column_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "row_index": self.row_index,
            "column_index": self.column_index,
            "section_name": self.section_name,
            "metric_type": self.metric_type.value,
        }


@dataclass
class SheetSection:
    """
    One contiguous region of a grid sharing a layout style.
    start_row / end_row are inclusive 0-based indices into the source grid.
    """
    name: str
    kind: SectionKind
    start_row: int
    end_row: int
    metrics: List[SheetMetric] = field(default_factory=list)
    column_headers: List[str] = field(default_factory=list)  # Tabular only
    data_rows: List[List[str]] = field(default_factory=list)  # Tabular only, every data row

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "kind": self.kind.value,
            "start_row": self.start_row,
            "end_row": self.end_row,
            "metrics": [m.to_dict() for m in self.metrics],
        }
        if self.kind == SectionKind.TABULAR:
            data["column_headers"] = list(self.column_headers)
            data["data_rows"] = [list(r) for r in self.data_rows]
        return data


@dataclass
class SheetPreview:
    """What the setup wizard shows for one sheet tab"""
    headers: List[str]
    rows: List[List[str]]
    total_rows: int
    format: SheetFormat
    sections: List[SheetSection] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "headers": self.headers,
            "rows": self.rows,
            "total_rows": self.total_rows,
            "format": self.format.value,
            "sections": [s.to_dict() for s in self.sections],
        }


@dataclass
class SheetInfo:
    """One tab of a spreadsheet"""
    sheet_id: int
    title: str
    row_count: int = 0
    column_count: int = 0
