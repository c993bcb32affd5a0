"""TableExtractor -- orchestrator and public API for ingestkit-tables.

Runs the table inference core over grids, sheets and whole files:

1. Read the file via :class:`ParserChain` (openpyxl / pandas / xlrd).
2. Build a dense grid per sheet, merged cells flattened.
3. Repeatedly seed the best dense region, refine it, and clear it from the
   working grid until no candidate is left.
4. Decide each table's header depth (optionally overridden by a
   :class:`HeaderOracle`), then assemble the :class:`TableResult`.
5. Return an :class:`ExtractionResult` with every table, error and warning.

Sheets are independent; with ``max_workers > 1`` they run on a thread pool.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor

from ingestkit_tables.assembler import assemble_table, find_nearest_category, with_category_column
from ingestkit_tables.config import TableExtractorConfig
from ingestkit_tables.detection import best_candidate
from ingestkit_tables.errors import ErrorCode, IngestError, MalformedGridError
from ingestkit_tables.grid import (
    build_grid,
    clear_region,
    is_empty_row,
    merge_ranges_from_refs,
    slice_grid,
    validate_grid,
)
from ingestkit_tables.header import detect_header_depth
from ingestkit_tables.models import (
    DetectedTable,
    ExtractionResult,
    Grid,
    HeaderDecision,
    HeaderStrategy,
    Rect,
)
from ingestkit_tables.oracle import snippet_lines
from ingestkit_tables.parser_chain import ParserChain
from ingestkit_tables.protocols import HeaderOracle, SheetSource
from ingestkit_tables.refine import refine_region

logger = logging.getLogger("ingestkit_tables")


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class TableExtractor:
    """Finds tables in spreadsheet grids and splits them into header and rows.

    Parameters
    ----------
    config:
        Pipeline configuration; defaults to ``TableExtractorConfig()``.
    oracle:
        Optional :class:`HeaderOracle` whose valid answers override the
        deterministic header depth and may reject implausible tables.
    """

    def __init__(
        self,
        config: TableExtractorConfig | None = None,
        oracle: HeaderOracle | None = None,
    ) -> None:
        self._config = config or TableExtractorConfig()
        self._oracle = oracle
        self._parser_chain = ParserChain(self._config)

    # -- public API ----------------------------------------------------------

    def extract_tables(
        self,
        grid: Grid,
        sheet_name: str | None = None,
        errors: list[IngestError] | None = None,
    ) -> list[DetectedTable]:
        """Find every table in *grid*, in sheet order.

        Args:
            grid: Rectangular grid of trimmed cell strings.
            sheet_name: Name recorded on each :class:`DetectedTable`.
            errors: Optional list that receives oracle-related warnings.

        Returns:
            The detected tables; empty when the grid holds no table.

        Raises:
            MalformedGridError: If the grid is not rectangular or has rows
                but no columns.
        """
        validate_grid(grid)
        if errors is None:
            errors = []

        regions, remainder = self._locate_regions(grid)
        tables: list[DetectedTable] = []
        for region, block in regions:
            decision = self._decide_header(block, sheet_name, errors)
            result = assemble_table(block, decision.depth, self._config)
            if not result.rows:
                logger.debug(
                    "Dropping region rows %d-%d on sheet '%s': no data rows",
                    region.r1, region.r2, sheet_name,
                )
                continue

            if self._rejected_by_oracle(result.header, result.rows, sheet_name, errors):
                continue

            category = None
            if self._config.detect_category:
                category = find_nearest_category(
                    remainder, region, self._config.category_scan_rows
                )
            if category and self._config.category_column:
                result = with_category_column(result, category)

            tables.append(
                DetectedTable(
                    sheet_name=sheet_name,
                    table_index=len(tables),
                    region=region,
                    header_depth=decision.depth,
                    header_strategy=decision.strategy,
                    category=category,
                    result=result,
                )
            )
            logger.debug(
                "Table %d on sheet '%s': rows %d-%d cols %d-%d, depth %d (%s), %d data rows",
                len(tables) - 1,
                sheet_name,
                region.r1,
                region.r2,
                region.c1,
                region.c2,
                decision.depth,
                decision.strategy.value,
                len(result.rows),
            )
            if self._config.log_sample_data:
                logger.debug("Header: %s", result.header)

        return tables

    def extract_sheet(self, sheet: SheetSource) -> tuple[list[DetectedTable], list[IngestError]]:
        """Build the grid of one sheet and extract its tables.

        A malformed grid is reported as ``E_GRID_MALFORMED`` and the sheet is
        skipped; an empty sheet yields ``W_SHEET_SKIPPED_EMPTY`` and a sheet
        without tables ``W_NO_TABLE_FOUND``.
        """
        errors: list[IngestError] = []
        name = sheet.name
        rows = sheet.rows()

        raw_height = len(rows)
        raw_width = max((len(row) for row in rows), default=0)
        if raw_height > self._config.max_rows or raw_width > self._config.max_cols:
            errors.append(
                IngestError(
                    code=ErrorCode.W_GRID_CLIPPED,
                    message=(
                        f"Sheet '{name}' clipped to {self._config.max_rows} rows x "
                        f"{self._config.max_cols} columns."
                    ),
                    sheet_name=name,
                    stage="grid",
                    recoverable=True,
                )
            )
            logger.warning("Sheet '%s' exceeds the grid size limits; clipped", name)

        grid = build_grid(
            rows,
            merge_ranges_from_refs(sheet.merges()),
            max_rows=self._config.max_rows,
            max_cols=self._config.max_cols,
        )

        if not grid or (grid[0] and all(is_empty_row(row) for row in grid)):
            errors.append(
                IngestError(
                    code=ErrorCode.W_SHEET_SKIPPED_EMPTY,
                    message=f"Sheet '{name}' has no content; skipped.",
                    sheet_name=name,
                    stage="grid",
                    recoverable=True,
                )
            )
            logger.info("Skipped empty sheet '%s'", name)
            return [], errors

        try:
            tables = self.extract_tables(grid, name, errors)
        except MalformedGridError as exc:
            errors.append(
                IngestError(
                    code=exc.code,
                    message=f"Sheet '{name}': {exc}",
                    sheet_name=name,
                    stage="grid",
                    recoverable=True,
                )
            )
            logger.warning("Skipped malformed sheet '%s': %s", name, exc)
            return [], errors
        except Exception as exc:
            errors.append(
                IngestError(
                    code=ErrorCode.E_PROCESS_REGION_DETECT,
                    message=f"Table detection failed for sheet '{name}': {exc}",
                    sheet_name=name,
                    stage="detect",
                    recoverable=True,
                )
            )
            logger.exception("Table detection failed for sheet '%s'", name)
            return [], errors

        if not tables:
            errors.append(
                IngestError(
                    code=ErrorCode.W_NO_TABLE_FOUND,
                    message=f"No table found on sheet '{name}'.",
                    sheet_name=name,
                    stage="detect",
                    recoverable=True,
                )
            )
        logger.info("Sheet '%s': %d table(s)", name, len(tables))
        return tables, errors

    def extract_file(self, file_path: str) -> ExtractionResult:
        """Extract every table from a spreadsheet file.

        Parameters
        ----------
        file_path:
            Filesystem path to an ``.xlsx``, ``.xlsm`` or ``.xls`` file.

        Returns
        -------
        ExtractionResult
            Tables of all sheets plus every error and warning.  A file that
            cannot be read yields no tables and an ``E_PARSE_*`` error.

        Raises
        ------
        FileNotFoundError
            If *file_path* does not exist.
        """
        start = time.monotonic()
        workbook, parse_errors = self._parser_chain.parse(file_path)
        error_details = list(parse_errors)
        skipped_reasons = dict(workbook.skipped_reasons)

        sheets = workbook.sheets
        if self._config.max_workers > 1 and len(sheets) > 1:
            with ThreadPoolExecutor(max_workers=self._config.max_workers) as pool:
                outcomes = list(pool.map(self.extract_sheet, sheets))
        else:
            outcomes = [self.extract_sheet(sheet) for sheet in sheets]

        tables: list[DetectedTable] = []
        for sheet, (sheet_tables, sheet_errors) in zip(sheets, outcomes):
            tables.extend(sheet_tables)
            error_details.extend(sheet_errors)
            for error in sheet_errors:
                if error.code in (ErrorCode.W_SHEET_SKIPPED_EMPTY, ErrorCode.E_GRID_MALFORMED):
                    skipped_reasons[sheet.name] = error.code.value

        drain = getattr(self._oracle, "drain_errors", None)
        if callable(drain):
            error_details.extend(drain())

        errors: list[str] = []
        warnings: list[str] = []
        for error in error_details:
            bucket = errors if error.code.value.startswith("E_") else warnings
            if error.code.value not in bucket:
                bucket.append(error.code.value)

        elapsed = time.monotonic() - start
        logger.info(
            "Extracted %d table(s) from %s (%d sheets, %d skipped) in %.3fs",
            len(tables),
            file_path,
            len(sheets),
            len(skipped_reasons),
            elapsed,
        )

        return ExtractionResult(
            file_path=file_path,
            content_hash=workbook.content_hash,
            tables=tables,
            sheets_parsed=len(sheets),
            sheets_skipped=len(skipped_reasons),
            skipped_reasons=skipped_reasons,
            errors=errors,
            warnings=warnings,
            error_details=error_details,
            processing_time_seconds=elapsed,
        )

    def extract_batch(self, file_paths: list[str]) -> list[ExtractionResult]:
        """Extract tables from several files sequentially, in order."""
        return [self.extract_file(fp) for fp in file_paths]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _locate_regions(self, grid: Grid) -> tuple[list[tuple[Rect, Grid]], Grid]:
        """Seed, refine and clear regions until no candidate is left.

        Each block is sliced before its region is cleared, so later regions
        never see cells of earlier ones.  Returns the regions in sheet order
        and the grid with every region cleared.
        """
        working = [list(row) for row in grid]
        found: list[tuple[Rect, Grid]] = []
        while len(found) < self._config.max_tables_per_sheet:
            candidate = best_candidate(working, self._config)
            if candidate is None:
                break
            region = refine_region(working, candidate.rect, self._config)
            found.append((region, slice_grid(working, region)))
            clear_region(working, region)
        found.sort(key=lambda item: (item[0].r1, item[0].c1))
        return found, working

    def _decide_header(
        self, block: Grid, sheet_name: str | None, errors: list[IngestError]
    ) -> HeaderDecision:
        decision = detect_header_depth(block, self._config)
        if self._oracle is None or len(block) <= 1:
            return decision

        try:
            suggestion = self._oracle.suggest_header_boundary(
                snippet_lines(block, self._config.oracle_snippet_rows)
            )
        except Exception as exc:
            self._record_oracle_failure(exc, "header", sheet_name, errors)
            return decision
        if suggestion is None:
            return decision

        header_row, data_start = suggestion
        limit = min(self._config.max_header_depth, len(block) - 1)
        if not 0 <= header_row <= data_start <= limit:
            errors.append(
                IngestError(
                    code=ErrorCode.W_ORACLE_OVERRIDE_IGNORED,
                    message=(
                        f"Oracle header boundary ({header_row}, {data_start}) outside "
                        f"0..{limit}; keeping depth {decision.depth}."
                    ),
                    sheet_name=sheet_name,
                    stage="header",
                    recoverable=True,
                )
            )
            return decision

        if data_start != decision.depth:
            logger.debug(
                "Oracle overrides header depth %d -> %d on sheet '%s'",
                decision.depth, data_start, sheet_name,
            )
        return HeaderDecision(
            depth=data_start, strategy=HeaderStrategy.ORACLE, row_scores=decision.row_scores
        )

    def _rejected_by_oracle(
        self,
        header: list[str],
        rows: list[list[str]],
        sheet_name: str | None,
        errors: list[IngestError],
    ) -> bool:
        if self._oracle is None:
            return False
        try:
            verdict = self._oracle.is_likely_data_table(
                header, rows[: self._config.oracle_sample_rows]
            )
        except Exception as exc:
            self._record_oracle_failure(exc, "validate", sheet_name, errors)
            return False
        if verdict is None:
            return False
        is_table, confidence = verdict
        if is_table or confidence < self._config.oracle_reject_confidence:
            return False
        errors.append(
            IngestError(
                code=ErrorCode.W_ORACLE_REJECTED_TABLE,
                message=f"Oracle rejected a table (confidence {confidence:.2f}).",
                sheet_name=sheet_name,
                stage="validate",
                recoverable=True,
            )
        )
        logger.info("Oracle rejected a table on sheet '%s'", sheet_name)
        return True

    @staticmethod
    def _record_oracle_failure(
        exc: Exception,
        stage: str,
        sheet_name: str | None,
        errors: list[IngestError],
    ) -> None:
        """Record a raising oracle as "no suggestion"; heuristics stay in charge."""
        errors.append(
            IngestError(
                code=ErrorCode.E_ORACLE_FAILED,
                message=f"Oracle call failed: {type(exc).__name__}: {exc}",
                sheet_name=sheet_name,
                stage=stage,
                recoverable=True,
            )
        )
        logger.warning(
            "Oracle call failed during %s on sheet '%s': %s", stage, sheet_name, exc
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_default_extractor(
    use_oracle: bool = False,
    base_url: str = "http://localhost:11434",
    **overrides,
) -> TableExtractor:
    """Create a :class:`TableExtractor`, optionally with an Ollama-backed oracle.

    Keyword arguments other than ``config`` are passed to
    :class:`TableExtractorConfig`.
    """
    config = overrides.pop("config", None)
    if config is None:
        config = TableExtractorConfig(**overrides)

    oracle = None
    if use_oracle:
        from ingestkit_tables.backends import OllamaLLM
        from ingestkit_tables.oracle import LLMHeaderOracle

        oracle = LLMHeaderOracle(OllamaLLM(base_url=base_url, config=config), config)

    return TableExtractor(config=config, oracle=oracle)
