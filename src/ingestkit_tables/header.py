"""Header boundary detection.

Decides how many leading rows of a table block are header rather than data.
The primary rule looks for the first run of rows that look like data (numeric,
similarly shaped to their neighbour, free of header keywords).  When no such
run exists, a bounded search picks the depth that makes the remaining columns
most consistently typed.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence

from ingestkit_tables.cells import classify_cell, header_weight
from ingestkit_tables.config import TableExtractorConfig
from ingestkit_tables.models import CellType, Grid, HeaderDecision, HeaderStrategy

logger = logging.getLogger("ingestkit_tables")

_NUMERIC_TYPES = (CellType.NUMBER, CellType.DATE)

_NUMERIC_WEIGHT = 0.45
_SIMILARITY_WEIGHT = 0.40


# ---------------------------------------------------------------------------
# Row features
# ---------------------------------------------------------------------------


def row_type_tokens(row: Sequence[str]) -> set[str]:
    """Positional type shape of a row, e.g. ``{"0:text", "2:number"}``."""
    return {f"{c}:{classify_cell(value).value}" for c, value in enumerate(row) if value.strip()}


def jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def _non_empty(row: Sequence[str]) -> list[str]:
    return [value for value in row if value.strip()]


def _numeric_ratio(values: list[str]) -> float:
    if not values:
        return 0.0
    return sum(1 for v in values if classify_cell(v) in _NUMERIC_TYPES) / len(values)


def _keyword_fraction(values: list[str]) -> float:
    if not values:
        return 0.0
    return sum(header_weight(v) for v in values) / len(values)


def data_score(
    row: Sequence[str],
    next_row: Sequence[str] | None,
    config: TableExtractorConfig,
) -> float:
    """Score in ``[0, 1]`` of how strongly *row* looks like a data row."""
    values = _non_empty(row)
    num_ratio = _numeric_ratio(values)
    sim_next = jaccard(row_type_tokens(row), row_type_tokens(next_row)) if next_row is not None else 0.0
    penalty = config.keyword_penalty * _keyword_fraction(values)
    score = _NUMERIC_WEIGHT * num_ratio + _SIMILARITY_WEIGHT * sim_next - penalty
    return max(0.0, min(1.0, score))


def header_likelihood(row: Sequence[str]) -> float:
    """Dictionary keyword density of a row, discounted by its numeric share."""
    values = _non_empty(row)
    return _keyword_fraction(values) * (1.0 - _numeric_ratio(values))


def column_typing_stability(rows: Sequence[Sequence[str]]) -> float:
    """Mean share of each column's cells that carry the column's dominant type.

    Empty cells are ignored; columns without any value are skipped.
    """
    width = max((len(row) for row in rows), default=0)
    shares: list[float] = []
    for c in range(width):
        types = Counter(
            classify_cell(row[c]) for row in rows if c < len(row) and row[c].strip()
        )
        total = sum(types.values())
        if total == 0:
            continue
        shares.append(types.most_common(1)[0][1] / total)
    if not shares:
        return 0.0
    return sum(shares) / len(shares)


def find_data_run(scores: Sequence[float], threshold: float, min_run: int) -> int | None:
    """Index of the first run of *min_run* consecutive scores >= *threshold*."""
    run = 0
    for i, score in enumerate(scores):
        if score >= threshold:
            run += 1
            if run >= min_run:
                return i - min_run + 1
        else:
            run = 0
    return None


# ---------------------------------------------------------------------------
# Depth detection
# ---------------------------------------------------------------------------


def detect_header_depth(block: Grid, config: TableExtractorConfig) -> HeaderDecision:
    """Decide how many leading rows of *block* are header rows.

    Args:
        block: The table region's rows (rectangular).
        config: Thresholds and search bounds.

    Returns:
        A :class:`HeaderDecision`.  Depth 0 is only returned for a block of
        at most one row.
    """
    height = len(block)
    if height <= 1:
        return HeaderDecision(depth=0, strategy=HeaderStrategy.HEADERLESS)

    scan = min(config.header_scan_rows, height)
    scores = [
        data_score(block[i], block[i + 1] if i + 1 < height else None, config)
        for i in range(scan)
    ]

    run_start = find_data_run(scores, config.data_row_threshold, config.min_data_run)
    if run_start is not None and 0 < run_start <= config.max_header_depth:
        logger.debug("Header depth %d from first data run", run_start)
        return HeaderDecision(depth=run_start, strategy=HeaderStrategy.DATA_RUN, row_scores=scores)

    if run_start is not None and run_start > 0:
        search_limit = run_start
    else:
        search_limit = config.default_search_depth
    upper = max(1, min(search_limit, config.max_header_depth, height - 1))

    best_depth = 1
    best_total = -1.0
    for h in range(1, upper + 1):
        stability = column_typing_stability(block[h : h + config.stability_sample_rows])
        likelihood = sum(header_likelihood(row) for row in block[:h]) / h
        total = config.stability_weight * stability + config.header_likelihood_weight * likelihood
        if total > best_total:
            best_depth, best_total = h, total

    logger.debug("Header depth %d from stability search (total=%.3f)", best_depth, best_total)
    return HeaderDecision(
        depth=best_depth, strategy=HeaderStrategy.STABILITY_SEARCH, row_scores=scores
    )
