"""Final table assembly and nearby category labels."""

from __future__ import annotations

from ingestkit_tables.cells import is_numeric_like
from ingestkit_tables.columns import build_header, project_columns
from ingestkit_tables.config import TableExtractorConfig
from ingestkit_tables.grid import is_empty_row
from ingestkit_tables.models import Grid, Rect, TableResult

CATEGORY_SEPARATOR = " / "


def _trim_empty_edges(rows: list[list[str]]) -> list[list[str]]:
    start, end = 0, len(rows)
    while start < end and is_empty_row(rows[start]):
        start += 1
    while end > start and is_empty_row(rows[end - 1]):
        end -= 1
    return rows[start:end]


def assemble_table(block: Grid, depth: int, config: TableExtractorConfig) -> TableResult:
    """Turn a table block and its header depth into a :class:`TableResult`.

    The header is built from the first *depth* rows; the remaining rows are
    projected onto the surviving columns and rows left entirely empty are
    discarded.
    """
    width = len(block[0]) if block else 0
    header_rows = block[:depth]
    data_rows = block[depth:]

    header = build_header(
        header_rows, data_rows, width, config.label_policy, config.label_separator
    )
    header, rows = project_columns(
        header, data_rows, config.min_column_values, config.column_sample_rows
    )
    rows = [row for row in _trim_empty_edges(rows) if not is_empty_row(row)]
    return TableResult(header=header, rows=rows)


def with_category_column(result: TableResult, category: str) -> TableResult:
    """Append a trailing ``category`` column holding *category* on every row."""
    return TableResult(
        header=[*result.header, "category"],
        rows=[[*row, category] for row in result.rows],
    )


def _category_text(grid: Grid, r: int, rect: Rect) -> str | None:
    values = [v for v in grid[r][rect.c1 : rect.c2 + 1] if v.strip()]
    if not values or any(is_numeric_like(v) for v in values):
        return None
    distinct: list[str] = []
    for value in values:
        if value not in distinct:
            distinct.append(value)
    return CATEGORY_SEPARATOR.join(distinct)


def find_nearest_category(grid: Grid, rect: Rect, scan_rows: int = 5) -> str | None:
    """Find the nearest all-text line above, then below, a table region.

    Only the region's columns are inspected.  Returns ``None`` when no such
    line lies within *scan_rows* rows.
    """
    for r in range(rect.r1 - 1, max(rect.r1 - 1 - scan_rows, -1), -1):
        text = _category_text(grid, r, rect)
        if text:
            return text
    for r in range(rect.r2 + 1, min(rect.r2 + 1 + scan_rows, len(grid))):
        text = _category_text(grid, r, rect)
        if text:
            return text
    return None
