"""
Metric extraction for detected sheet sections.
"""
from typing import List, Sequence

from services.sheets.heuristics import (
    cell_text,
    populated_cells,
    is_empty_row,
    is_data_like_cell,
    is_section_header_row,
    is_aggregate_row,
)
from services.sheets.models import SheetSection, SheetMetric, SectionKind, MetricType

# Data rows sampled per column for the preview value
SAMPLE_ROWS = 3


def extract_metrics(section: SheetSection, grid: Sequence[Sequence]) -> SheetSection:
    """
    Populate section.metrics from the grid rows the section covers.
    Tabular sections also get column_headers and the full data_rows matrix.
    """
    if section.kind == SectionKind.TABULAR:
        _extract_tabular(section, grid)
    else:
        _extract_key_value(section, grid)
    return section


def _row(grid: Sequence[Sequence], index: int) -> Sequence:
    return grid[index] if 0 <= index < len(grid) and grid[index] is not None else []


def _is_lone_value_row(row: Sequence) -> bool:
    """A row holding a single data-like cell in column 0"""
    cells = populated_cells(row)
    return len(cells) == 1 and bool(cell_text(row, 0)) and is_data_like_cell(cell_text(row, 0))


def _extract_key_value(section: SheetSection, grid: Sequence[Sequence]) -> None:
    metrics: List[SheetMetric] = []
    last_row = min(section.end_row, len(grid) - 1)

    i = section.start_row
    while i <= last_row:
        row = _row(grid, i)
        key = cell_text(row, 0)
        if not key:
            i += 1
            continue

        value = ""
        for col in range(1, len(row)):
            value = cell_text(row, col)
            if value:
                break

        consumed_next = False
        if not value and i + 1 <= last_row and _is_lone_value_row(_row(grid, i + 1)):
            # Label on one row, its value alone on the row below
            value = cell_text(_row(grid, i + 1), 0)
            consumed_next = True

        # A title row only counts as a label when it has a stacked value
        is_title = is_section_header_row(row) and not consumed_next

        if value and not is_title:
            metrics.append(SheetMetric(
                key=key,
                value=value,
                row_index=i,
                section_name=section.name,
                metric_type=MetricType.SUMMARY,
            ))

        i += 2 if consumed_next else 1

    section.metrics = metrics


def _extract_tabular(section: SheetSection, grid: Sequence[Sequence]) -> None:
    header_row_idx = section.start_row
    header_row = _row(grid, header_row_idx)

    # Empty header cells are dropped, not padded
    headers = []
    for col_idx in range(len(header_row)):
        name = cell_text(header_row, col_idx)
        if name:
            headers.append((name, col_idx))

    last_row = min(section.end_row, len(grid) - 1)
    data_rows = []
    for i in range(header_row_idx + 1, last_row + 1):
        row = _row(grid, i)
        if is_empty_row(row) or is_aggregate_row(row):
            continue
        data_rows.append([cell_text(row, col_idx) for _, col_idx in headers])

    metrics = []
    for position, (name, col_idx) in enumerate(headers):
        sample = ""
        for data_row in data_rows[:SAMPLE_ROWS]:
            if data_row[position]:
                sample = data_row[position]
                break

        metrics.append(SheetMetric(
            key=name,
            value=f"Sample: {sample}" if sample else "No data",
            row_index=header_row_idx,
            column_index=col_idx,
            section_name=section.name,
            metric_type=MetricType.DETAIL,
        ))

    section.column_headers = [name for name, _ in headers]
    section.data_rows = data_rows
    section.metrics = metrics
