"""
Sync-time value lookup strategies.

Each strategy searches the raw grid for one mapped source identifier and
returns the raw cell text it found, or None. Strategies are tried in order;
a None from every strategy is a miss, not an error.
"""
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from services.sheets.heuristics import cell_text, is_empty_row, is_lookup_header_row
from services.sheets.value_parser import parse_numeric

CellPredicate = Callable[[str], bool]


def is_numeric_cell(text: str) -> bool:
    return parse_numeric(text) is not None


def is_non_empty_cell(text: str) -> bool:
    return bool(text)


def find_header_rows(grid: Sequence[Sequence]) -> List[int]:
    """Indices of rows that look like column headers anywhere in the grid"""
    return [i for i, row in enumerate(grid) if is_lookup_header_row(row or [])]


class LookupStrategy(ABC):
    """Base class for value lookup strategies"""

    name = "base"

    @abstractmethod
    def find(
        self,
        grid: Sequence[Sequence],
        source: str,
        accept: CellPredicate = is_numeric_cell,
    ) -> Optional[str]:
        """
        Find the raw cell for a source identifier.

        Args:
            grid: Raw sheet grid
            source: Mapping entry's source column or label
            accept: Which cells count as a value (numeric by default)

        Returns:
            Raw cell text, or None if this strategy found nothing
        """
        pass


class KeyValueLookup(LookupStrategy):
    """A row whose first cell is the label; first accepted cell to its right"""

    name = "key-value"

    def find(self, grid, source, accept=is_numeric_cell):
        target = source.strip().lower()
        for row in grid:
            row = row or []
            if cell_text(row, 0).lower() != target:
                continue
            for col in range(1, len(row)):
                text = cell_text(row, col)
                if accept(text):
                    return text
        return None


class TabularLookup(LookupStrategy):
    """
    A column headed by the label under any header row; first accepted cell
    below it, skipping other header rows and empty rows.
    """

    name = "tabular"

    def __init__(self, header_rows: Optional[List[int]] = None):
        self.header_rows = header_rows

    def find(self, grid, source, accept=is_numeric_cell):
        target = source.strip().lower()
        header_rows = self.header_rows if self.header_rows is not None else find_header_rows(grid)
        header_set = set(header_rows)

        for header_idx in header_rows:
            header_row = grid[header_idx] or []
            column = next(
                (c for c in range(len(header_row)) if cell_text(header_row, c).lower() == target),
                None,
            )
            if column is None:
                continue

            for i in range(header_idx + 1, len(grid)):
                row = grid[i] or []
                if i in header_set or is_empty_row(row):
                    continue
                text = cell_text(row, column)
                if accept(text):
                    return text
        return None


def default_strategies(grid: Sequence[Sequence]) -> List[LookupStrategy]:
    """Key-value first, then tabular over the grid's header rows"""
    return [KeyValueLookup(), TabularLookup(find_header_rows(grid))]


def resolve_value(
    grid: Sequence[Sequence],
    source: str,
    strategies: Optional[List[LookupStrategy]] = None,
    accept: CellPredicate = is_numeric_cell,
) -> Optional[str]:
    """Try each strategy in order and return the first raw value found"""
    if strategies is None:
        strategies = default_strategies(grid)
    for strategy in strategies:
        value = strategy.find(grid, source, accept)
        if value is not None:
            return value
    return None
