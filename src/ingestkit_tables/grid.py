"""Dense cell grid construction and grid utilities.

Turns raw per-row cell values plus merged-cell ranges into a rectangular grid
of trimmed strings in which every cell of a merged range carries the anchor
value.  Also provides the small grid helpers shared by the detection stages.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from collections.abc import Iterable, Sequence

from openpyxl.utils.cell import range_boundaries

from ingestkit_tables.errors import MalformedGridError
from ingestkit_tables.models import Grid, MergeRange, Rect

logger = logging.getLogger("ingestkit_tables")


# ---------------------------------------------------------------------------
# Cell normalisation
# ---------------------------------------------------------------------------


def format_cell_value(value: object) -> str:
    """Render a raw reader value as display text.

    ``None`` becomes ``""``, integral floats lose their ``.0``, booleans
    become ``TRUE``/``FALSE`` and dates are rendered in ISO form.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, dt.datetime):
        if value.time() == dt.time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (dt.date, dt.time)):
        return value.isoformat()
    return str(value)


def normalize_cell(value: object) -> str:
    """Return the trimmed, newline-normalised text of a cell."""
    text = format_cell_value(value)
    text = text.replace("\u00a0", " ").replace("\r\n", "\n").replace("\r", "\n")
    return text.strip()


# ---------------------------------------------------------------------------
# Merge ranges
# ---------------------------------------------------------------------------


def merge_range_from_ref(ref: str, value: object = "") -> MergeRange:
    """Build a :class:`MergeRange` from an A1-style range such as ``"A1:C2"``.

    Raises:
        ValueError: If *ref* is not a valid cell range.
    """
    min_col, min_row, max_col, max_row = range_boundaries(ref)
    if None in (min_col, min_row, max_col, max_row):
        raise ValueError(f"Merge range must name two cells: {ref!r}")
    return MergeRange(
        start_row=min_row - 1,
        start_col=min_col - 1,
        end_row=max_row - 1,
        end_col=max_col - 1,
        value=normalize_cell(value),
    )


def merge_ranges_from_refs(merges: Iterable[tuple[str, str, str]]) -> list[MergeRange]:
    """Convert ``(start_ref, end_ref, anchor_value)`` triples, skipping bad refs."""
    ranges: list[MergeRange] = []
    for start_ref, end_ref, value in merges:
        try:
            ranges.append(merge_range_from_ref(f"{start_ref}:{end_ref}", value))
        except (TypeError, ValueError) as exc:
            logger.debug("Skipping invalid merge range %s:%s: %s", start_ref, end_ref, exc)
    return ranges


# ---------------------------------------------------------------------------
# Grid construction
# ---------------------------------------------------------------------------


def build_grid(
    rows: Sequence[Sequence[object]],
    merges: Iterable[MergeRange] = (),
    max_rows: int | None = None,
    max_cols: int | None = None,
) -> Grid:
    """Build a rectangular grid of normalised cell strings.

    Args:
        rows: Raw per-row cell values; rows may differ in length.
        merges: Merged ranges whose anchor value is copied into every cell.
        max_rows: Optional row cap; extra rows are dropped.
        max_cols: Optional column cap; extra columns are dropped.

    Returns:
        A list of equally long rows.  Zero input rows give an empty grid.
    """
    if max_rows is not None:
        rows = rows[:max_rows]
    if not rows:
        return []

    width = max(len(row) for row in rows)
    if max_cols is not None:
        width = min(width, max_cols)

    grid: Grid = []
    for row in rows:
        cells = [normalize_cell(v) for v in row[:width]]
        cells.extend([""] * (width - len(cells)))
        grid.append(cells)

    height = len(grid)
    for merge in merges:
        if merge.start_row >= height or merge.start_col >= width:
            continue
        end_row = min(merge.end_row, height - 1)
        end_col = min(merge.end_col, width - 1)
        anchor = merge.value.strip()
        for r in range(max(merge.start_row, 0), end_row + 1):
            for c in range(max(merge.start_col, 0), end_col + 1):
                grid[r][c] = anchor

    return grid


def validate_grid(grid: Grid) -> None:
    """Check that *grid* is rectangular and, when it has rows, has columns.

    Raises:
        MalformedGridError: If the grid cannot be processed.
    """
    if not grid:
        return
    width = len(grid[0])
    if width == 0:
        raise MalformedGridError(f"Grid has {len(grid)} rows but zero columns")
    for index, row in enumerate(grid):
        if len(row) != width:
            raise MalformedGridError(
                f"Grid row {index} has {len(row)} cells, expected {width}"
            )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def grid_shape(grid: Grid) -> tuple[int, int]:
    return len(grid), (len(grid[0]) if grid else 0)


def is_empty_row(row: Sequence[str]) -> bool:
    return all(not cell.strip() for cell in row)


def slice_grid(grid: Grid, rect: Rect) -> Grid:
    """Return a copy of the cells inside *rect* (inclusive bounds)."""
    if rect.is_empty:
        return []
    return [list(row[rect.c1 : rect.c2 + 1]) for row in grid[rect.r1 : rect.r2 + 1]]


def clear_region(grid: Grid, rect: Rect) -> None:
    """Blank every cell of *rect* in place."""
    for r in range(rect.r1, rect.r2 + 1):
        row = grid[r]
        for c in range(rect.c1, rect.c2 + 1):
            row[c] = ""
