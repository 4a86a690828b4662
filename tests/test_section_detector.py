"""Tests for section detection, metric extraction and the wizard preview."""

from services.sheets.metric_extractor import extract_metrics
from services.sheets.models import SheetSection, SectionKind, SheetFormat, MetricType
from services.sheets.section_detector import (
    FALLBACK_SECTION_NAME,
    build_preview,
    detect_sections,
    detect_simple_format,
)

MIXED_GRID = [
    ["FUND OVERVIEW", "", "", ""],
    ["Fund Size", "$50,000,000", "", ""],
    ["Vintage", "2021", "", ""],
    ["", "", "", ""],
    ["PROPERTY PORTFOLIO", "", "", ""],
    ["Property Name", "City", "Units", "Occupancy"],
    ["Maple Court", "Austin", "120", "94%"],
    ["Oak Ridge", "Dallas", "80", "91%"],
    ["TOTAL", "", "200", ""],
]


def _boundaries(sections):
    return [(s.name, s.kind, s.start_row, s.end_row) for s in sections]


# ---------------------------------------------------------------------------
# detect_sections
# ---------------------------------------------------------------------------


def test_lone_total_title_falls_back_to_stacked_pair():
    """A title whose value sits alone on the next row still yields one metric."""
    grid = [["TOTAL AUM", ""], ["$1,500,000", ""]]

    sections = detect_sections(grid)

    assert len(sections) == 1
    section = sections[0]
    assert section.name == FALLBACK_SECTION_NAME
    assert section.kind == SectionKind.KEY_VALUE
    assert [(m.key, m.value) for m in section.metrics] == [("TOTAL AUM", "$1,500,000")]
    assert section.metrics[0].row_index == 0


def test_titled_key_value_section():
    """Rows under an upper-case title become summary metrics."""
    grid = [
        ["PORTFOLIO SUMMARY", ""],
        ["NOI", "$200,000"],
        ["Occupancy", "94%"],
        ["Cap Rate", "5.5%"],
    ]

    sections = detect_sections(grid)

    assert len(sections) == 1
    section = sections[0]
    assert section.name == "PORTFOLIO SUMMARY"
    assert section.kind == SectionKind.KEY_VALUE
    assert (section.start_row, section.end_row) == (1, 3)
    assert [m.key for m in section.metrics] == ["NOI", "Occupancy", "Cap Rate"]
    assert all(m.metric_type == MetricType.SUMMARY for m in section.metrics)


def test_table_header_flips_section_to_tabular():
    """The header row opens the tabular region and TOTAL rows are excluded."""
    sections = detect_sections(MIXED_GRID)

    assert _boundaries(sections) == [
        ("FUND OVERVIEW", SectionKind.KEY_VALUE, 1, 3),
        ("PROPERTY PORTFOLIO", SectionKind.TABULAR, 5, 8),
    ]
    table = sections[1]
    assert table.column_headers == ["Property Name", "City", "Units", "Occupancy"]
    assert table.data_rows == [
        ["Maple Court", "Austin", "120", "94%"],
        ["Oak Ridge", "Dallas", "80", "91%"],
    ]
    assert [m.value for m in table.metrics] == [
        "Sample: Maple Court", "Sample: Austin", "Sample: 120", "Sample: 94%",
    ]
    assert [m.column_index for m in table.metrics] == [0, 1, 2, 3]


def test_sections_without_metrics_are_dropped():
    grid = [
        ["FUND OVERVIEW"],
        ["Notes only"],
        ["RETURNS SUMMARY"],
        ["Net IRR", "14.2%"],
    ]

    sections = detect_sections(grid)

    assert [s.name for s in sections] == ["RETURNS SUMMARY"]
    assert all(s.metrics for s in sections)


def test_every_returned_section_has_metrics():
    grids = [
        MIXED_GRID,
        [["FUND OVERVIEW"], ["", ""], ["HOLDINGS DETAILS"]],
        [["just text"], ["more text"]],
        [["", ""], ["", ""]],
    ]
    for grid in grids:
        for section in detect_sections(grid):
            assert section.metrics
            assert section.end_row >= section.start_row


def test_empty_grid_has_no_sections():
    assert detect_sections([]) == []


def test_mixed_case_titles_are_not_section_headers():
    """Known limitation: only upper-case titles split sections."""
    grid = [["Portfolio Summary"], ["NOI", "$200,000"]]

    sections = detect_sections(grid)

    assert len(sections) == 1
    assert sections[0].name == FALLBACK_SECTION_NAME
    assert [m.key for m in sections[0].metrics] == ["NOI"]


def test_untitled_wide_sheet_falls_back_to_tabular():
    grid = [
        ["Property", "City", "Units", "Occupancy", "NOI"],
        ["Maple Court", "Austin", "120", "94%", "$1,000"],
        ["Oak Ridge", "Dallas", "80", "91%", "$900"],
    ]

    sections = detect_sections(grid)

    assert len(sections) == 1
    assert sections[0].kind == SectionKind.TABULAR
    assert sections[0].start_row == 0
    assert len(sections[0].metrics) == 5


def test_detection_is_stable_on_round_tripped_grid():
    """Copying only section rows (and their titles) back into place keeps the boundaries."""
    sections = detect_sections(MIXED_GRID)

    width = max(len(row) for row in MIXED_GRID)
    rebuilt = [[""] * width for _ in MIXED_GRID]
    for section in sections:
        title_row = next(
            i for i in range(section.start_row, -1, -1) if MIXED_GRID[i][0] == section.name
        )
        for i in range(title_row, section.end_row + 1):
            rebuilt[i] = list(MIXED_GRID[i])

    assert _boundaries(detect_sections(rebuilt)) == _boundaries(sections)


# ---------------------------------------------------------------------------
# detect_simple_format
# ---------------------------------------------------------------------------


def test_simple_format_narrow_rows_are_key_value():
    grid = [["NOI", "$200,000"], ["Occupancy", "94%"], ["Units", "120"]]
    assert detect_simple_format(grid) == SectionKind.KEY_VALUE


def test_simple_format_tie_goes_to_tabular():
    grid = [["NOI", "$200,000"], ["a", "b", "c", "d"]]
    assert detect_simple_format(grid) == SectionKind.TABULAR


def test_simple_format_only_samples_first_twenty_rows():
    grid = [["a", "b", "c", "d"]] * 3 + [["NOI", "1"]] * 17 + [["NOI", "1"]] * 50
    # 17 key-value votes beat 3 tabular votes no matter how long the sheet is
    assert detect_simple_format(grid) == SectionKind.KEY_VALUE


# ---------------------------------------------------------------------------
# extract_metrics
# ---------------------------------------------------------------------------


def test_tabular_extraction_excludes_total_row():
    """Five data rows plus a trailing TOTAL row give five data rows and one metric per header."""
    grid = [["Property Name", "Occupancy", "Cap Rate"]]
    grid += [[f"Property {i}", f"{90 + i}%", f"{5 + i / 10:.1f}%"] for i in range(5)]
    grid.append(["TOTAL", "", ""])
    section = SheetSection(name="Portfolio", kind=SectionKind.TABULAR, start_row=0, end_row=len(grid) - 1)

    extract_metrics(section, grid)

    assert len(section.data_rows) == 5
    assert len(section.metrics) == 3
    assert all(m.metric_type == MetricType.DETAIL for m in section.metrics)
    assert section.metrics[0].value == "Sample: Property 0"


def test_tabular_extraction_drops_empty_headers():
    grid = [
        ["Property", "", "Units"],
        ["Maple Court", "ignored", "120"],
        ["", "", ""],
        ["Average", "", "100"],
    ]
    section = SheetSection(name="T", kind=SectionKind.TABULAR, start_row=0, end_row=3)

    extract_metrics(section, grid)

    assert section.column_headers == ["Property", "Units"]
    assert section.data_rows == [["Maple Court", "120"]]
    assert [m.column_index for m in section.metrics] == [0, 2]


def test_tabular_sample_reads_only_first_three_rows():
    grid = [["Property", "Notes"]] + [[f"P{i}", ""] for i in range(3)] + [["P3", "late note"]]
    section = SheetSection(name="T", kind=SectionKind.TABULAR, start_row=0, end_row=4)

    extract_metrics(section, grid)

    assert section.metrics[1].value == "No data"
    assert len(section.data_rows) == 4


def test_key_value_takes_first_non_empty_cell():
    grid = [["Fund Size", "", "$50M", "$60M"], ["Label only", "", ""]]
    section = SheetSection(name="S", kind=SectionKind.KEY_VALUE, start_row=0, end_row=1)

    extract_metrics(section, grid)

    assert [(m.key, m.value) for m in section.metrics] == [("Fund Size", "$50M")]


def test_key_value_skips_title_rows_without_stacked_value():
    grid = [["FUND PERFORMANCE", ""], ["NOI", "$5"]]
    section = SheetSection(name="S", kind=SectionKind.KEY_VALUE, start_row=0, end_row=1)

    extract_metrics(section, grid)

    assert [m.key for m in section.metrics] == ["NOI"]


# ---------------------------------------------------------------------------
# build_preview
# ---------------------------------------------------------------------------


def test_preview_of_mixed_sheet():
    preview = build_preview(MIXED_GRID)

    assert preview.format == SheetFormat.MIXED
    assert preview.headers == ["Metric Name", "Value", "Section"]
    assert preview.rows[0] == ["Fund Size", "$50,000,000", "FUND OVERVIEW"]
    assert preview.total_rows == 6


def test_preview_of_single_key_value_section():
    preview = build_preview([["NOI", "$200,000"], ["Occupancy", "94%"]])

    assert preview.format == SheetFormat.KEY_VALUE
    assert preview.headers == ["Metric Name", "Value"]
    assert preview.rows == [["NOI", "$200,000"], ["Occupancy", "94%"]]


def test_preview_of_single_tabular_section():
    grid = [
        ["Property", "City", "Units", "Occupancy", "NOI"],
        ["Maple Court", "Austin", "120", "94%", "$1,000"],
    ]

    preview = build_preview(grid)

    assert preview.format == SheetFormat.TABULAR
    assert preview.headers == ["Column", "Sample"]
    assert preview.rows[0] == ["Property", "Sample: Maple Court"]


def test_preview_caps_rows_but_reports_total():
    grid = [[f"Metric {i}", str(i)] for i in range(10)]

    preview = build_preview(grid, max_rows=4)

    assert len(preview.rows) == 4
    assert preview.total_rows == 10


def test_preview_without_sections_shows_raw_rows():
    grid = [["Notes"], ["Draft"]]

    preview = build_preview(grid)

    assert preview.format == SheetFormat.TABULAR
    assert preview.headers == ["Notes"]
    assert preview.rows == [["Draft"]]
    assert preview.sections == []


def test_preview_to_dict_includes_table_rows():
    data = build_preview(MIXED_GRID).to_dict()

    assert data["format"] == "mixed"
    table = data["sections"][1]
    assert table["kind"] == "tabular"
    assert len(table["data_rows"]) == 2
    assert "data_rows" not in data["sections"][0]
