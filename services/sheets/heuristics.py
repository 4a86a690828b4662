"""
Row and cell shape heuristics shared by section detection, metric
extraction and sync-time value lookup.
"""
import re
from typing import List, Sequence

from services.sheets.value_parser import parse_numeric

# A row whose only cell is an upper-case title containing one of these opens a section
SECTION_KEYWORDS = (
    "overview", "summary", "portfolio", "details", "breakdown",
    "total", "analysis", "metrics", "performance", "returns",
    "holdings", "properties", "assets", "investments", "fund",
)

# First-cell markers of aggregate rows inside a table
AGGREGATE_ROW_MARKERS = ("TOTAL", "SUMMARY", "AVERAGE")

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_US_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}$")
_BARE_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


def cell_text(row: Sequence, index: int) -> str:
    """Trimmed cell text, "" for missing or ragged cells"""
    if index < 0 or index >= len(row):
        return ""
    value = row[index]
    return "" if value is None else str(value).strip()


def populated_cells(row: Sequence) -> List[str]:
    return [str(c).strip() for c in row if c is not None and str(c).strip()]


def is_empty_row(row: Sequence) -> bool:
    return not populated_cells(row)


def is_data_like_cell(text: str) -> bool:
    """Currency, date, percentage or bare-number cell"""
    text = text.strip()
    if not text:
        return False
    if "$" in text or text.endswith("%"):
        return True
    if _ISO_DATE_RE.match(text) or _US_DATE_RE.match(text):
        return True
    if " " in text:
        return False
    return bool(_BARE_NUMBER_RE.match(re.sub(r"[,$%]", "", text)))


def is_header_like_cell(text: str) -> bool:
    """Plain text label of moderate length"""
    text = text.strip()
    return not is_data_like_cell(text) and 1 < len(text) < 50


def is_numeric_like_cell(text: str) -> bool:
    return parse_numeric(text) is not None


def is_section_header_row(row: Sequence) -> bool:
    """
    Section title row: a lone upper-case first cell of at least 5 characters
    containing a section keyword. Mixed-case titles are not recognised.
    """
    first = cell_text(row, 0)
    if len(first) < 5:
        return False

    if any(cell_text(row, i) for i in range(1, len(row))):
        return False

    if first != first.upper():
        return False

    lowered = first.lower()
    return any(keyword in lowered for keyword in SECTION_KEYWORDS)


def is_table_header_row(row: Sequence) -> bool:
    """At least 4 populated cells, mostly short text labels rather than data"""
    cells = populated_cells(row)
    if len(cells) < 4:
        return False

    header_like = 0
    data_like = 0
    for text in cells:
        if is_data_like_cell(text):
            data_like += 1
        elif 1 < len(text) < 50:
            header_like += 1

    return header_like >= 4 and header_like > data_like


def is_lookup_header_row(row: Sequence) -> bool:
    """
    Looser header test used when locating columns at sync time:
    3+ header-like text cells and at most 2 numeric-like cells.
    """
    cells = populated_cells(row)
    header_like = sum(1 for text in cells if is_header_like_cell(text))
    numeric_like = sum(1 for text in cells if is_numeric_like_cell(text))
    return header_like >= 3 and numeric_like <= 2


def is_aggregate_row(row: Sequence) -> bool:
    first = cell_text(row, 0).upper()
    return any(marker in first for marker in AGGREGATE_ROW_MARKERS)
