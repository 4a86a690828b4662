"""
Section detection for spreadsheet grids.

A sheet is split into sections at upper-case title rows ("FUND OVERVIEW",
"PROPERTY PORTFOLIO SUMMARY"). Each section starts as key-value and flips to
tabular at its first table-header row. Sheets without any usable section are
treated as a single section whose layout is guessed from row shapes.

Everything here is pure: no I/O, no shared state.
"""
from typing import List, Optional, Sequence

from services.sheets.heuristics import (
    cell_text,
    populated_cells,
    is_section_header_row,
    is_table_header_row,
)
from services.sheets.metric_extractor import extract_metrics
from services.sheets.models import (
    SheetSection,
    SheetPreview,
    SectionKind,
    SheetFormat,
)

FALLBACK_SECTION_NAME = "Sheet Data"
FORMAT_SAMPLE_ROWS = 20


def detect_simple_format(grid: Sequence[Sequence]) -> SectionKind:
    """
    Guess the layout of a sheet without section titles.
    Rows with <=2 populated cells vote key-value, rows with >=4 vote tabular.
    A wide first row adds a tabular point. Ties go to tabular.
    """
    key_value_score = 0
    tabular_score = 0

    if grid and len(populated_cells(grid[0] or [])) > 4:
        tabular_score += 1

    for row in grid[:FORMAT_SAMPLE_ROWS]:
        populated = len(populated_cells(row or []))
        if populated <= 2:
            key_value_score += 1
        if populated >= 4:
            tabular_score += 1

    return SectionKind.KEY_VALUE if key_value_score > tabular_score else SectionKind.TABULAR


def _close(section: Optional[SheetSection], end_row: int, grid, sections: List[SheetSection]) -> None:
    if section is None:
        return
    section.end_row = end_row
    if section.end_row < section.start_row:
        return
    extract_metrics(section, grid)
    if section.metrics:
        sections.append(section)


def detect_sections(grid: Sequence[Sequence]) -> List[SheetSection]:
    """
    Partition a raw grid into key-value and tabular sections.
    Sections that yield no metrics are never returned.
    """
    sections: List[SheetSection] = []
    current: Optional[SheetSection] = None
    last_index = len(grid) - 1

    for i, row in enumerate(grid):
        row = row or []

        if is_section_header_row(row):
            _close(current, i - 1, grid, sections)
            current = SheetSection(
                name=cell_text(row, 0),
                kind=SectionKind.KEY_VALUE,
                start_row=i + 1,
                end_row=last_index,
            )
            continue

        if current is not None and current.kind == SectionKind.KEY_VALUE and is_table_header_row(row):
            # The header row itself opens the tabular region
            current.kind = SectionKind.TABULAR
            current.start_row = i

    _close(current, last_index, grid, sections)

    if not sections and grid:
        _close(
            SheetSection(
                name=FALLBACK_SECTION_NAME,
                kind=detect_simple_format(grid),
                start_row=0,
                end_row=last_index,
            ),
            last_index,
            grid,
            sections,
        )

    return sections


def build_preview(grid: Sequence[Sequence], max_rows: int = 200) -> SheetPreview:
    """
    Build the wizard preview for a sheet.

    Several sections flatten to [key, value, section] rows (format "mixed");
    one section flattens to [key, value]; a sheet with nothing detectable
    falls back to its first row as headers and the rest as data.
    """
    sections = detect_sections(grid)

    if len(sections) > 1:
        metrics = [m for section in sections for m in section.metrics]
        return SheetPreview(
            headers=["Metric Name", "Value", "Section"],
            rows=[[m.key, m.value, m.section_name] for m in metrics[:max_rows]],
            total_rows=len(metrics),
            format=SheetFormat.MIXED,
            sections=sections,
        )

    if len(sections) == 1:
        section = sections[0]
        if section.kind == SectionKind.TABULAR:
            headers = ["Column", "Sample"]
            sheet_format = SheetFormat.TABULAR
        else:
            headers = ["Metric Name", "Value"]
            sheet_format = SheetFormat.KEY_VALUE
        return SheetPreview(
            headers=headers,
            rows=[[m.key, m.value] for m in section.metrics[:max_rows]],
            total_rows=len(section.metrics),
            format=sheet_format,
            sections=sections,
        )

    header_row = grid[0] if grid else []
    data_rows = list(grid[1:])
    return SheetPreview(
        headers=[str(c) for c in (header_row or [])],
        rows=[[str(c) for c in (row or [])] for row in data_rows[:max_rows]],
        total_rows=len(data_rows),
        format=SheetFormat.TABULAR,
    )
