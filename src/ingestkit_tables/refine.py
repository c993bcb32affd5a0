"""Table region refinement.

Grows a dense seed rectangle into the full table region: header rows with
gaps directly above the seed are pulled in, sparse columns beside it are
admitted when they carry enough values, and rows below are added until the
table runs out.
"""

from __future__ import annotations

import logging
import math

from ingestkit_tables.cells import is_column_label, is_unit_marker
from ingestkit_tables.config import TableExtractorConfig
from ingestkit_tables.grid import slice_grid
from ingestkit_tables.header import detect_header_depth
from ingestkit_tables.models import Grid, Rect

logger = logging.getLogger("ingestkit_tables")

_WIDE_WINDOW_ROWS = 10


def _row_values(grid: Grid, r: int, rect: Rect) -> list[str]:
    return [v for v in grid[r][rect.c1 : rect.c2 + 1] if v.strip()]


def _is_banner(values: list[str]) -> bool:
    """A row whose non-empty cells all repeat one merged value."""
    return len(values) >= 2 and len(set(values)) == 1


def _looks_like_header_row(values: list[str]) -> bool:
    """Several labels, or a lone column name or unit marker; not a lone title."""
    if not values or _is_banner(values):
        return False
    if len(values) >= 2:
        return True
    return is_column_label(values[0]) or is_unit_marker(values[0])


def pull_up_header(grid: Grid, rect: Rect, config: TableExtractorConfig) -> Rect:
    """Add header rows with gaps directly above *rect*.

    A row holding a single cell that is neither a column name nor a unit
    marker is a sheet title and stays outside the region.
    """
    r1 = rect.r1
    while r1 > 0 and rect.r1 - r1 < config.max_header_depth:
        if not _looks_like_header_row(_row_values(grid, r1 - 1, rect)):
            break
        r1 -= 1
    return rect if r1 == rect.r1 else rect.with_bounds(r1=r1)


def column_threshold(window: int, config: TableExtractorConfig) -> int:
    """Minimum non-empty count for a column to join the table."""
    if window >= _WIDE_WINDOW_ROWS:
        return max(config.min_column_hits, math.floor(config.column_fill_ratio * window + 0.5))
    return config.min_column_hits


def expand_horizontal(
    grid: Grid, rect: Rect, header_depth: int, config: TableExtractorConfig
) -> Rect:
    """Admit neighbouring columns that are filled enough below the header."""
    width = len(grid[0]) if grid else 0
    start = rect.r1 + header_depth
    if start > rect.r2:
        start = min(rect.r1 + 1, rect.r2)
    window = min(config.sample_window_rows, rect.r2 - start + 1)
    end = start + window - 1
    threshold = column_threshold(window, config)

    def passes(c: int) -> bool:
        hits = sum(1 for r in range(start, end + 1) if grid[r][c].strip())
        return hits >= threshold

    c2 = rect.c2
    misses = 0
    for c in range(rect.c2 + 1, width):
        if passes(c):
            c2, misses = c, 0
            continue
        misses += 1
        if misses >= config.column_lookahead:
            break

    c1 = rect.c1
    misses = 0
    for c in range(rect.c1 - 1, -1, -1):
        if passes(c):
            c1, misses = c, 0
            continue
        misses += 1
        if misses >= config.column_lookahead:
            break

    return rect.with_bounds(c1=c1, c2=c2)


def extend_down(grid: Grid, rect: Rect, config: TableExtractorConfig) -> Rect:
    """Add rows below *rect* until ``empty_row_stop`` consecutive empty rows."""
    r2 = rect.r2
    empties = 0
    for r in range(rect.r2 + 1, len(grid)):
        if _row_values(grid, r, rect):
            r2, empties = r, 0
            continue
        empties += 1
        if empties >= config.empty_row_stop:
            break
    return rect.with_bounds(r2=r2)


def refine_region(grid: Grid, seed: Rect, config: TableExtractorConfig) -> Rect:
    """Grow a seed rectangle into the full table region.

    Steps run in order: header pull-up, provisional header depth on the
    pulled-up block, horizontal expansion, then vertical extension.
    """
    rect = pull_up_header(grid, seed, config)
    depth = detect_header_depth(slice_grid(grid, rect), config).depth
    rect = expand_horizontal(grid, rect, depth, config)
    rect = extend_down(grid, rect, config)
    if rect != seed:
        logger.debug(
            "Refined seed rows %d-%d cols %d-%d to rows %d-%d cols %d-%d",
            seed.r1, seed.r2, seed.c1, seed.c2, rect.r1, rect.r2, rect.c1, rect.c2,
        )
    return rect
