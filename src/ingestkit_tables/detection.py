"""Dense rectangular region detection.

Builds an occupancy mask from the grid, enumerates maximal rectangles with the
largest-rectangle-in-histogram sweep, and scores each rectangle by how densely
and how regularly it is filled.  The best-scoring rectangle seeds a table.
"""

from __future__ import annotations

import logging
import statistics
from collections.abc import Sequence

from ingestkit_tables.cells import is_signal_cell
from ingestkit_tables.config import TableExtractorConfig
from ingestkit_tables.models import Candidate, Grid, Rect

logger = logging.getLogger("ingestkit_tables")

Mask = list[list[bool]]


# ---------------------------------------------------------------------------
# Masks
# ---------------------------------------------------------------------------


def signal_mask(grid: Grid) -> Mask:
    """Mark every signal cell (non-empty, not a lone symbol)."""
    return [[is_signal_cell(value) for value in row] for row in grid]


def bridge_gaps(mask: Mask, max_gap: int) -> Mask:
    """Mark short empty runs between two signal cells of a row as occupied."""
    bridged: Mask = []
    for row in mask:
        out = list(row)
        last = -1
        for c, on in enumerate(row):
            if not on:
                continue
            gap = c - last - 1
            if last >= 0 and 0 < gap <= max_gap:
                for g in range(last + 1, c):
                    out[g] = True
            last = c
        bridged.append(out)
    return bridged


# ---------------------------------------------------------------------------
# Histogram
# ---------------------------------------------------------------------------


def largest_rectangles(heights: Sequence[int]) -> list[tuple[int, int, int]]:
    """Enumerate the maximal rectangles under a histogram.

    Parameters
    ----------
    heights:
        Bar heights, one per column.

    Returns
    -------
    list[tuple[int, int, int]]
        ``(left, right, height)`` triples with inclusive column bounds, one
        per maximal rectangle of non-zero height.
    """
    results: list[tuple[int, int, int]] = []
    stack: list[tuple[int, int]] = []
    for i, h in enumerate([*heights, 0]):
        start = i
        while stack and stack[-1][1] > h:
            start, height = stack.pop()
            results.append((start, i - 1, height))
        if h > 0 and (not stack or stack[-1][1] < h):
            stack.append((start, h))
    return results


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


class _PrefixCounts:
    """Row-wise prefix sums over a mask for O(1) row-segment counts."""

    def __init__(self, mask: Mask) -> None:
        self._rows = []
        for row in mask:
            acc = [0]
            for on in row:
                acc.append(acc[-1] + (1 if on else 0))
            self._rows.append(acc)

    def row_count(self, r: int, c1: int, c2: int) -> int:
        acc = self._rows[r]
        return acc[c2 + 1] - acc[c1]


def score_rect(
    counts: _PrefixCounts, rect: Rect, config: TableExtractorConfig
) -> Candidate:
    per_row = [counts.row_count(r, rect.c1, rect.c2) for r in range(rect.r1, rect.r2 + 1)]
    density = sum(per_row) / rect.area
    if density >= 1.0:
        regularity = 1.0
    else:
        regularity = 1.0 / (1.0 + statistics.pstdev(per_row))
    score = config.density_weight * density + config.regularity_weight * regularity
    return Candidate(rect=rect, score=score, density=density, regularity=regularity)


def _rank(candidate: Candidate) -> tuple[float, int, int, int]:
    return (-candidate.score, -candidate.area, candidate.rect.r1, candidate.rect.c1)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def find_candidates(grid: Grid, config: TableExtractorConfig) -> list[Candidate]:
    """Return all table-seed candidates in *grid*, best first.

    Every row contributes its ``top_k_per_row`` largest rectangles ending on
    that row.  Rectangles below the minimum table size or the density
    threshold are discarded.
    """
    if not grid or not grid[0]:
        return []

    signal = signal_mask(grid)
    occupied = bridge_gaps(signal, config.bridge_gap)
    counts = _PrefixCounts(signal)

    width = len(grid[0])
    heights = [0] * width
    candidates: list[Candidate] = []

    for r, row in enumerate(occupied):
        for c in range(width):
            heights[c] = heights[c] + 1 if row[c] else 0

        rects = [
            Rect(r1=r - h + 1, c1=left, r2=r, c2=right)
            for left, right, h in largest_rectangles(heights)
            if h >= config.min_table_rows and right - left + 1 >= config.min_table_cols
        ]
        rects.sort(key=lambda rect: (-rect.area, rect.c1))

        for rect in rects[: config.top_k_per_row]:
            candidate = score_rect(counts, rect, config)
            if candidate.density < config.density_threshold:
                continue
            candidates.append(candidate)

    candidates.sort(key=_rank)
    return candidates


def best_candidate(grid: Grid, config: TableExtractorConfig) -> Candidate | None:
    """Return the single best candidate, or ``None`` when the grid has no table.

    Ties on score are broken by larger area, then top-most, then left-most.
    """
    candidates = find_candidates(grid, config)
    if not candidates:
        return None
    best = candidates[0]
    logger.debug(
        "Best candidate rows %d-%d cols %d-%d (score=%.3f, density=%.3f, regularity=%.3f)",
        best.rect.r1,
        best.rect.r2,
        best.rect.c1,
        best.rect.c2,
        best.score,
        best.density,
        best.regularity,
    )
    return best
