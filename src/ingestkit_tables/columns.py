"""Header label construction and column projection.

Collapses several header rows into one label per column under the configured
:class:`LabelPolicy`, names unlabelled columns, and drops placeholder columns
that carry (almost) no data.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from ingestkit_tables.cells import is_unit_marker
from ingestkit_tables.models import LabelPolicy

UNDEFINED_PREFIX = "undefined_"
PLACEHOLDER_PREFIX = "col_"

_PLACEHOLDER_RE = re.compile(rf"^(?:{UNDEFINED_PREFIX}|{PLACEHOLDER_PREFIX})\d+$")
_LINE_BREAK_RE = re.compile(r"[\n\t]+")


def flatten_label(value: str) -> str:
    """Join a multi-line header cell into a single line."""
    parts = (part.strip() for part in _LINE_BREAK_RE.split(value))
    return " ".join(part for part in parts if part)


def collapse_label(values: Sequence[str], policy: LabelPolicy, separator: str = " ") -> str:
    """Collapse the non-empty labels of one column, top to bottom."""
    if policy == LabelPolicy.JOIN:
        distinct: list[str] = []
        for value in values:
            if value and value not in distinct:
                distinct.append(value)
        return separator.join(distinct)

    label = ""
    for value in values:
        if not value:
            continue
        # A bare unit qualifies the label above it rather than replacing it.
        if label and is_unit_marker(value):
            continue
        label = value
    return label


def is_placeholder_label(label: str) -> bool:
    """Return True for the synthetic ``undefined_<n>`` and ``col_<n>`` names."""
    return bool(_PLACEHOLDER_RE.match(label))


def build_header(
    header_rows: Sequence[Sequence[str]],
    data_rows: Sequence[Sequence[str]],
    width: int,
    policy: LabelPolicy = LabelPolicy.LAST_NON_EMPTY,
    separator: str = " ",
) -> list[str]:
    """Build one label per column from the header rows.

    Columns without any label are named ``undefined_<n>`` when some data row
    has a value beneath them, otherwise ``col_<n>`` (1-based).
    """
    header: list[str] = []
    for c in range(width):
        values = [flatten_label(row[c]) for row in header_rows if c < len(row)]
        label = collapse_label(values, policy, separator)
        if not label:
            has_data = any(c < len(row) and row[c].strip() for row in data_rows)
            prefix = UNDEFINED_PREFIX if has_data else PLACEHOLDER_PREFIX
            label = f"{prefix}{c + 1}"
        header.append(label)
    return header


def project_columns(
    header: Sequence[str],
    data_rows: Sequence[Sequence[str]],
    min_values: int = 3,
    sample_rows: int = 200,
) -> tuple[list[str], list[list[str]]]:
    """Drop sparse placeholder columns and square every row to the header.

    Only synthetic ``undefined_<n>`` and ``col_<n>`` columns with fewer than
    *min_values* non-empty cells in the first *sample_rows* data rows are
    dropped; a labelled column is always kept.  When that would drop every
    column, all columns are kept.

    Returns:
        The surviving header and the data rows restricted to it.
    """
    width = len(header)
    sample = data_rows[:sample_rows]

    keep: list[int] = []
    for c, label in enumerate(header):
        if not is_placeholder_label(label):
            keep.append(c)
            continue
        filled = sum(1 for row in sample if c < len(row) and row[c].strip())
        if filled >= min_values:
            keep.append(c)
    if not keep:
        keep = list(range(width))

    projected_rows: list[list[str]] = []
    for row in data_rows:
        padded = list(row[:width]) + [""] * max(0, width - len(row))
        projected_rows.append([padded[c] for c in keep])

    return [header[c] for c in keep], projected_rows
