"""ingestkit-tables -- table region and header inference for supplier spreadsheets.

Public API exports for models, enums, errors, configuration, the core
detection functions, the optional oracle, and collaborator protocols.
"""

from ingestkit_tables.assembler import assemble_table, find_nearest_category
from ingestkit_tables.cache import TTLOracleCache, content_key
from ingestkit_tables.cells import classify_cell, is_signal_cell
from ingestkit_tables.columns import build_header, project_columns
from ingestkit_tables.config import TableExtractorConfig
from ingestkit_tables.detection import best_candidate, find_candidates, largest_rectangles
from ingestkit_tables.errors import ErrorCode, IngestError, MalformedGridError
from ingestkit_tables.extractor import TableExtractor, create_default_extractor
from ingestkit_tables.grid import build_grid, merge_range_from_ref, slice_grid
from ingestkit_tables.header import data_score, detect_header_depth
from ingestkit_tables.models import (
    Candidate,
    CellType,
    DetectedTable,
    ExtractionResult,
    HeaderDecision,
    HeaderStrategy,
    LabelPolicy,
    MergeRange,
    ParserUsed,
    Rect,
    SheetData,
    TableResult,
    WorkbookData,
)
from ingestkit_tables.oracle import LLMHeaderOracle
from ingestkit_tables.parser_chain import ParserChain
from ingestkit_tables.protocols import HeaderOracle, LLMBackend, OracleCache, SheetSource
from ingestkit_tables.refine import refine_region

__all__ = [
    # Enums
    "CellType",
    "LabelPolicy",
    "HeaderStrategy",
    "ParserUsed",
    # Core models
    "Rect",
    "Candidate",
    "HeaderDecision",
    "MergeRange",
    "SheetData",
    "WorkbookData",
    "TableResult",
    "DetectedTable",
    "ExtractionResult",
    # Core functions
    "build_grid",
    "merge_range_from_ref",
    "slice_grid",
    "classify_cell",
    "is_signal_cell",
    "largest_rectangles",
    "find_candidates",
    "best_candidate",
    "refine_region",
    "data_score",
    "detect_header_depth",
    "build_header",
    "project_columns",
    "assemble_table",
    "find_nearest_category",
    # Orchestration
    "TableExtractor",
    "create_default_extractor",
    "ParserChain",
    # Oracle
    "LLMHeaderOracle",
    "TTLOracleCache",
    "content_key",
    # Errors
    "ErrorCode",
    "IngestError",
    "MalformedGridError",
    # Config
    "TableExtractorConfig",
    # Protocols
    "SheetSource",
    "LLMBackend",
    "HeaderOracle",
    "OracleCache",
]
