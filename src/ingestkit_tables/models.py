"""Pydantic data models and enumerations for ingestkit-tables.

Defines the cell-type and policy enums, the inclusive ``Rect`` region used by
every detection stage, the transient ``Candidate`` and ``HeaderDecision``
artifacts, the reader-facing ``SheetData``/``WorkbookData`` models, and the
externally visible ``TableResult``/``DetectedTable``/``ExtractionResult``.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from ingestkit_tables.errors import IngestError

Grid = list[list[str]]


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class CellType(str, Enum):
    """Coarse classification of a single trimmed cell value."""

    EMPTY = "empty"
    NUMBER = "number"
    DATE = "date"
    MONEY = "money"
    SKU_LIKE = "sku-like"
    TEXT = "text"


class LabelPolicy(str, Enum):
    """How several header rows collapse into one label per column.

    ``last_non_empty`` lets the bottom-most label win (child labels override
    parent labels); ``join`` concatenates every distinct label top to bottom.
    """

    LAST_NON_EMPTY = "last_non_empty"
    JOIN = "join"


class HeaderStrategy(str, Enum):
    """Which path fixed the header depth of a table."""

    DATA_RUN = "data_run"
    STABILITY_SEARCH = "stability_search"
    HEADERLESS = "headerless"
    ORACLE = "oracle"


class ParserUsed(str, Enum):
    """Which reader produced a sheet's raw rows."""

    OPENPYXL = "openpyxl"
    PANDAS_FALLBACK = "pandas_fallback"
    XLRD = "xlrd"


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


class Rect(BaseModel):
    """Inclusive rectangular sub-region ``(r1, c1, r2, c2)`` of a grid.

    A rect with ``r2 < r1`` or ``c2 < c1`` is the "no region" sentinel.
    """

    model_config = ConfigDict(frozen=True)

    r1: int
    c1: int
    r2: int
    c2: int

    @classmethod
    def empty(cls) -> Rect:
        return cls(r1=0, c1=0, r2=-1, c2=-1)

    @property
    def is_empty(self) -> bool:
        return self.r2 < self.r1 or self.c2 < self.c1

    @property
    def height(self) -> int:
        return 0 if self.is_empty else self.r2 - self.r1 + 1

    @property
    def width(self) -> int:
        return 0 if self.is_empty else self.c2 - self.c1 + 1

    @property
    def area(self) -> int:
        return self.height * self.width

    def contains(self, row: int, col: int) -> bool:
        return self.r1 <= row <= self.r2 and self.c1 <= col <= self.c2

    def with_bounds(self, **bounds: int) -> Rect:
        """Return a copy with some of ``r1``/``c1``/``r2``/``c2`` replaced."""
        return self.model_copy(update=bounds)


class Candidate(BaseModel):
    """A scored table-seed rectangle produced by the dense region detector."""

    rect: Rect
    score: float
    density: float
    regularity: float

    @property
    def area(self) -> int:
        return self.rect.area


class HeaderDecision(BaseModel):
    """Outcome of header-boundary detection for one block."""

    depth: int
    strategy: HeaderStrategy
    row_scores: list[float] = []


# ---------------------------------------------------------------------------
# Reader models
# ---------------------------------------------------------------------------


class MergeRange(BaseModel):
    """A merged-cell range (0-based, inclusive) and its anchor value."""

    start_row: int
    start_col: int
    end_row: int
    end_col: int
    value: str = ""


class SheetData(BaseModel):
    """Raw content of one worksheet as returned by the parser chain.

    Satisfies :class:`~ingestkit_tables.protocols.SheetSource`.
    """

    name: str
    cell_rows: list[list[str]]
    merge_refs: list[tuple[str, str, str]] = []
    parser_used: ParserUsed
    is_hidden: bool = False

    def rows(self) -> list[list[str]]:
        return self.cell_rows

    def merges(self) -> list[tuple[str, str, str]]:
        return self.merge_refs


class WorkbookData(BaseModel):
    """All readable sheets of one spreadsheet file."""

    file_path: str
    file_size_bytes: int
    content_hash: str
    sheets: list[SheetData]
    sheets_skipped: int = 0
    skipped_reasons: dict[str, str] = {}


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class TableResult(BaseModel):
    """One extracted table: a single header row plus data rows.

    Every row has exactly ``len(header)`` cells.
    """

    model_config = ConfigDict(frozen=True)

    header: list[str]
    rows: list[list[str]]

    def to_json(self) -> str:
        """Serialize as ``{"header": [...], "rows": [[...], ...]}``."""
        return self.model_dump_json()


class DetectedTable(BaseModel):
    """A ``TableResult`` with the sheet-level context it was found in."""

    sheet_name: str | None = None
    table_index: int
    region: Rect
    header_depth: int
    header_strategy: HeaderStrategy
    category: str | None = None
    result: TableResult


class ExtractionResult(BaseModel):
    """Final result returned after extracting tables from a file."""

    file_path: str
    content_hash: str
    tables: list[DetectedTable]
    sheets_parsed: int
    sheets_skipped: int
    skipped_reasons: dict[str, str]

    errors: list[str]
    warnings: list[str]
    error_details: list[IngestError] = []

    processing_time_seconds: float
