"""Spreadsheet reader chain for table extraction.

Reads every worksheet of a spreadsheet file into :class:`SheetData`:

1. ``.xlsx`` / ``.xlsm`` -- **openpyxl** (cached values, merged ranges, hidden
   state), falling back per sheet (or for the whole file when the workbook
   will not open) to **pandas** ``read_excel``, which loses merged ranges.
2. ``.xls`` -- **xlrd**, with merged ranges when formatting info is
   available, falling back to pandas for the whole file.

Chart-only and (optionally) hidden sheets are skipped.  Non-fatal warnings
and structured :class:`~ingestkit_tables.errors.IngestError` objects are
collected and returned alongside the :class:`WorkbookData`.
"""

from __future__ import annotations

import hashlib
import logging
import time
from pathlib import Path

import openpyxl
import pandas as pd
import xlrd
from openpyxl.chartsheet import Chartsheet
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from ingestkit_tables.config import TableExtractorConfig
from ingestkit_tables.errors import ErrorCode, IngestError
from ingestkit_tables.grid import format_cell_value
from ingestkit_tables.models import ParserUsed, SheetData, WorkbookData

logger = logging.getLogger("ingestkit_tables")

XLSX_SUFFIXES = (".xlsx", ".xlsm")
XLS_SUFFIXES = (".xls",)


def _is_password_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return "password" in message or "encrypted" in message


def _cell_ref(row: int, col: int) -> str:
    """A1-style reference for 0-based *row* and *col*."""
    return f"{get_column_letter(col + 1)}{row + 1}"


class ParserChain:
    """Fallback reader for ``.xlsx``, ``.xlsm`` and ``.xls`` files.

    Parameters
    ----------
    config:
        Pipeline configuration controlling row/column caps and hidden-sheet
        handling.
    """

    def __init__(self, config: TableExtractorConfig) -> None:
        self._config = config

    # -- public API ----------------------------------------------------------

    def parse(self, file_path: str) -> tuple[WorkbookData, list[IngestError]]:
        """Read every usable sheet of a spreadsheet file.

        Parameters
        ----------
        file_path:
            Filesystem path to the spreadsheet.

        Returns
        -------
        tuple[WorkbookData, list[IngestError]]
            The readable sheets and the errors/warnings met while reading.

        Raises
        ------
        FileNotFoundError
            If *file_path* does not exist.
        """
        errors: list[IngestError] = []
        skipped: dict[str, str] = {}
        start = time.monotonic()

        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        content_hash = hashlib.sha256(path.read_bytes()).hexdigest()
        file_size = path.stat().st_size

        def workbook(sheets: list[SheetData]) -> WorkbookData:
            return WorkbookData(
                file_path=file_path,
                file_size_bytes=file_size,
                content_hash=content_hash,
                sheets=sheets,
                sheets_skipped=len(skipped),
                skipped_reasons=skipped,
            )

        if file_size == 0:
            errors.append(
                IngestError(
                    code=ErrorCode.E_PARSE_EMPTY,
                    message="File is empty (0 bytes).",
                    stage="parse",
                )
            )
            logger.error("Parse failed: empty file %s", file_path)
            return workbook([]), errors

        suffix = path.suffix.lower()
        if suffix in XLSX_SUFFIXES:
            sheets = self._parse_xlsx(file_path, errors, skipped)
        elif suffix in XLS_SUFFIXES:
            sheets = self._parse_xls(file_path, errors, skipped)
        else:
            errors.append(
                IngestError(
                    code=ErrorCode.E_PARSE_UNSUPPORTED,
                    message=f"Unsupported file extension '{suffix}'.",
                    stage="parse",
                )
            )
            logger.error("Parse failed: unsupported file type %s", file_path)
            return workbook([]), errors

        if not sheets and not any(e.code.value.startswith("E_PARSE") for e in errors):
            errors.append(
                IngestError(
                    code=ErrorCode.E_PARSE_EMPTY,
                    message="No readable sheets found in workbook.",
                    stage="parse",
                )
            )

        logger.info(
            "Parsed %s: %d sheets (%d skipped) in %.3fs",
            file_path,
            len(sheets),
            len(skipped),
            time.monotonic() - start,
        )
        return workbook(sheets), errors

    # -- xlsx ----------------------------------------------------------------

    def _parse_xlsx(
        self, file_path: str, errors: list[IngestError], skipped: dict[str, str]
    ) -> list[SheetData]:
        try:
            wb = openpyxl.load_workbook(file_path, data_only=True)
        except Exception as exc:
            if _is_password_error(exc):
                errors.append(
                    IngestError(
                        code=ErrorCode.E_PARSE_PASSWORD,
                        message=f"File is password-protected: {exc}",
                        stage="parse",
                    )
                )
                logger.error("Parse failed: password-protected file %s", file_path)
                return []
            logger.warning("openpyxl could not open file %s: %s", file_path, exc)
            return self._parse_all_via_pandas(file_path, errors, reason=str(exc))

        sheets: list[SheetData] = []
        try:
            for sheet_name in wb.sheetnames:
                ws = wb[sheet_name]

                if isinstance(ws, Chartsheet):
                    self._skip(sheet_name, ErrorCode.W_SHEET_SKIPPED_CHART, "is chart-only", errors, skipped)
                    continue
                if not isinstance(ws, Worksheet):
                    continue

                is_hidden = ws.sheet_state != "visible"
                if is_hidden and self._config.skip_hidden_sheets:
                    self._skip(sheet_name, ErrorCode.W_SHEET_SKIPPED_HIDDEN, "is hidden", errors, skipped)
                    continue

                try:
                    sheets.append(self._read_openpyxl_sheet(ws, is_hidden))
                    continue
                except Exception as exc:
                    logger.warning(
                        "openpyxl failed for sheet '%s'; trying pandas fallback: %s",
                        sheet_name,
                        exc,
                    )

                sheet = self._read_pandas_sheet(file_path, sheet_name)
                if sheet is None:
                    errors.append(
                        IngestError(
                            code=ErrorCode.E_PARSE_CORRUPT,
                            message=f"All parsers failed for sheet '{sheet_name}'.",
                            sheet_name=sheet_name,
                            stage="parse",
                        )
                    )
                    logger.error("All parsers failed for sheet '%s' in %s", sheet_name, file_path)
                    continue

                errors.append(self._fallback_warning(sheet_name, "openpyxl could not read the sheet"))
                sheets.append(sheet)
        finally:
            wb.close()

        return sheets

    def _read_openpyxl_sheet(self, ws: Worksheet, is_hidden: bool) -> SheetData:
        max_row = min(ws.max_row or 0, self._config.max_rows + 1)
        max_col = min(ws.max_column or 0, self._config.max_cols + 1)

        rows = [
            [format_cell_value(v) for v in row]
            for row in ws.iter_rows(min_row=1, max_row=max_row, max_col=max_col, values_only=True)
        ]

        merges: list[tuple[str, str, str]] = []
        for rng in ws.merged_cells.ranges:
            anchor = ws.cell(row=rng.min_row, column=rng.min_col).value
            start_ref, _, end_ref = rng.coord.partition(":")
            merges.append((start_ref, end_ref or start_ref, format_cell_value(anchor)))

        return SheetData(
            name=ws.title,
            cell_rows=rows,
            merge_refs=merges,
            parser_used=ParserUsed.OPENPYXL,
            is_hidden=is_hidden,
        )

    # -- pandas fallback -----------------------------------------------------

    @staticmethod
    def _frame_rows(df: pd.DataFrame) -> list[list[str]]:
        return [
            [format_cell_value(None if pd.isna(v) else v) for v in record]
            for record in df.itertuples(index=False, name=None)
        ]

    def _read_pandas_sheet(self, file_path: str, sheet_name: str) -> SheetData | None:
        try:
            df = pd.read_excel(
                file_path,
                sheet_name=sheet_name,
                header=None,
                dtype=object,
                nrows=self._config.max_rows + 1,
            )
        except Exception:
            logger.debug("pandas parse failed for sheet '%s'", sheet_name, exc_info=True)
            return None
        return SheetData(
            name=sheet_name,
            cell_rows=self._frame_rows(df),
            parser_used=ParserUsed.PANDAS_FALLBACK,
        )

    def _parse_all_via_pandas(
        self, file_path: str, errors: list[IngestError], reason: str
    ) -> list[SheetData]:
        """Read every sheet with pandas when the primary reader cannot open the file."""
        try:
            frames = pd.read_excel(file_path, sheet_name=None, header=None, dtype=object)
        except Exception as exc:
            if _is_password_error(exc):
                code, message = ErrorCode.E_PARSE_PASSWORD, f"File is password-protected: {exc}"
            else:
                code, message = ErrorCode.E_PARSE_CORRUPT, f"All parsers failed. File may be corrupt: {exc}"
            errors.append(IngestError(code=code, message=message, stage="parse"))
            logger.error("Parse failed for %s: %s", file_path, code.value)
            return []

        sheets: list[SheetData] = []
        for name, df in frames.items():
            sheet_name = str(name)
            errors.append(self._fallback_warning(sheet_name, reason))
            sheets.append(
                SheetData(
                    name=sheet_name,
                    cell_rows=self._frame_rows(df),
                    parser_used=ParserUsed.PANDAS_FALLBACK,
                )
            )
        return sheets

    # -- xls -----------------------------------------------------------------

    def _parse_xls(
        self, file_path: str, errors: list[IngestError], skipped: dict[str, str]
    ) -> list[SheetData]:
        try:
            book = xlrd.open_workbook(file_path, formatting_info=True)
        except Exception as exc:
            if _is_password_error(exc):
                errors.append(
                    IngestError(
                        code=ErrorCode.E_PARSE_PASSWORD,
                        message=f"File is password-protected: {exc}",
                        stage="parse",
                    )
                )
                logger.error("Parse failed: password-protected file %s", file_path)
                return []
            logger.warning("xlrd could not open file %s: %s", file_path, exc)
            return self._parse_all_via_pandas(file_path, errors, reason=str(exc))

        sheets: list[SheetData] = []
        for sheet in book.sheets():
            is_hidden = bool(sheet.visibility)
            if is_hidden and self._config.skip_hidden_sheets:
                self._skip(sheet.name, ErrorCode.W_SHEET_SKIPPED_HIDDEN, "is hidden", errors, skipped)
                continue
            sheets.append(self._read_xlrd_sheet(sheet, book.datemode, is_hidden))
        return sheets

    def _read_xlrd_sheet(self, sheet: xlrd.sheet.Sheet, datemode: int, is_hidden: bool) -> SheetData:
        nrows = min(sheet.nrows, self._config.max_rows + 1)
        rows = [
            [self._format_xls_cell(cell, datemode) for cell in sheet.row(r)]
            for r in range(nrows)
        ]

        merges: list[tuple[str, str, str]] = []
        for rlo, rhi, clo, chi in sheet.merged_cells:
            anchor = ""
            if rlo < len(rows) and clo < len(rows[rlo]):
                anchor = rows[rlo][clo]
            merges.append((_cell_ref(rlo, clo), _cell_ref(rhi - 1, chi - 1), anchor))

        return SheetData(
            name=sheet.name,
            cell_rows=rows,
            merge_refs=merges,
            parser_used=ParserUsed.XLRD,
            is_hidden=is_hidden,
        )

    @staticmethod
    def _format_xls_cell(cell: xlrd.sheet.Cell, datemode: int) -> str:
        ctype = cell.ctype
        if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
            return ""
        if ctype == xlrd.XL_CELL_DATE:
            try:
                return format_cell_value(xlrd.xldate.xldate_as_datetime(cell.value, datemode))
            except (ValueError, OverflowError, xlrd.xldate.XLDateError):
                return format_cell_value(cell.value)
        if ctype == xlrd.XL_CELL_BOOLEAN:
            return format_cell_value(bool(cell.value))
        return format_cell_value(cell.value)

    # -- shared helpers ------------------------------------------------------

    @staticmethod
    def _skip(
        sheet_name: str,
        code: ErrorCode,
        reason: str,
        errors: list[IngestError],
        skipped: dict[str, str],
    ) -> None:
        errors.append(
            IngestError(
                code=code,
                message=f"Sheet '{sheet_name}' {reason}; skipped.",
                sheet_name=sheet_name,
                stage="parse",
                recoverable=True,
            )
        )
        skipped[sheet_name] = code.value
        logger.info("Skipped sheet '%s' (%s)", sheet_name, code.value)

    @staticmethod
    def _fallback_warning(sheet_name: str, reason: str) -> IngestError:
        logger.warning("Sheet '%s' parsed via pandas fallback", sheet_name)
        return IngestError(
            code=ErrorCode.W_PARSER_FALLBACK,
            message=f"Sheet '{sheet_name}' parsed via pandas fallback. Reason: {reason}",
            sheet_name=sheet_name,
            stage="parse",
            recoverable=True,
        )
