"""Tests for the ParserChain spreadsheet reader.

Real .xlsx fixtures come from conftest; the .xls path is exercised with a
patched ``xlrd.open_workbook`` returning lightweight sheet stand-ins.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import patch

import pytest
import xlrd

from ingestkit_tables.config import TableExtractorConfig
from ingestkit_tables.errors import ErrorCode
from ingestkit_tables.models import ParserUsed
from ingestkit_tables.parser_chain import ParserChain

OPEN_XLS = "ingestkit_tables.parser_chain.xlrd.open_workbook"


def _codes(errors) -> list[ErrorCode]:
    return [e.code for e in errors]


@pytest.fixture()
def chain(sample_config) -> ParserChain:
    return ParserChain(sample_config)


# ---------------------------------------------------------------------------
# .xlsx via openpyxl
# ---------------------------------------------------------------------------


class TestXlsx:
    def test_single_sheet(self, chain, price_list_xlsx) -> None:
        workbook, errors = chain.parse(str(price_list_xlsx))

        assert errors == []
        assert [s.name for s in workbook.sheets] == ["Prices"]
        sheet = workbook.sheets[0]
        assert sheet.parser_used == ParserUsed.OPENPYXL
        assert sheet.cell_rows[0][0] == "Acme Supplies Ltd"
        assert sheet.cell_rows[2] == ["Code", "Name", "Price", "Qty"]
        assert sheet.cell_rows[3] == ["A-101", "Widget 1", "10.5", "10"]
        assert workbook.file_size_bytes > 0
        assert len(workbook.content_hash) == 64

    def test_merged_ranges(self, chain, merged_header_xlsx) -> None:
        workbook, _ = chain.parse(str(merged_header_xlsx))
        merges = set(workbook.sheets[0].merges())
        assert merges == {
            ("A1", "D1", "Price list 2024"),
            ("A3", "B3", "Product"),
            ("C3", "D3", "Price"),
        }

    def test_skips_hidden_and_chart_sheets(self, chain, multi_sheet_xlsx) -> None:
        workbook, errors = chain.parse(str(multi_sheet_xlsx))

        assert [s.name for s in workbook.sheets] == ["Stock", "Empty", "ChartData"]
        assert workbook.skipped_reasons == {
            "Archive": "W_SHEET_SKIPPED_HIDDEN",
            "Chart": "W_SHEET_SKIPPED_CHART",
        }
        assert workbook.sheets_skipped == 2
        assert set(_codes(errors)) == {
            ErrorCode.W_SHEET_SKIPPED_HIDDEN,
            ErrorCode.W_SHEET_SKIPPED_CHART,
        }

    def test_hidden_sheet_kept_when_configured(self, multi_sheet_xlsx) -> None:
        chain = ParserChain(TableExtractorConfig(skip_hidden_sheets=False))
        workbook, _ = chain.parse(str(multi_sheet_xlsx))

        archive = next(s for s in workbook.sheets if s.name == "Archive")
        assert archive.is_hidden
        assert archive.cell_rows[1] == ["Z1", "1.5"]

    def test_row_cap(self, price_list_xlsx) -> None:
        chain = ParserChain(TableExtractorConfig(max_rows=4))
        workbook, _ = chain.parse(str(price_list_xlsx))
        assert len(workbook.sheets[0].cell_rows) == 5

    def test_sheet_falls_back_to_pandas(self, chain, price_list_xlsx) -> None:
        with patch.object(ParserChain, "_read_openpyxl_sheet", side_effect=RuntimeError("bad sheet")):
            workbook, errors = chain.parse(str(price_list_xlsx))

        assert _codes(errors) == [ErrorCode.W_PARSER_FALLBACK]
        sheet = workbook.sheets[0]
        assert sheet.parser_used == ParserUsed.PANDAS_FALLBACK
        assert sheet.merges() == []
        assert ["Code", "Name", "Price", "Qty"] in sheet.cell_rows

    def test_all_parsers_fail_for_sheet(self, chain, price_list_xlsx) -> None:
        with patch.object(ParserChain, "_read_openpyxl_sheet", side_effect=RuntimeError("bad")), \
                patch.object(ParserChain, "_read_pandas_sheet", return_value=None):
            workbook, errors = chain.parse(str(price_list_xlsx))

        assert workbook.sheets == []
        assert _codes(errors) == [ErrorCode.E_PARSE_CORRUPT]

    def test_password_protected(self, chain, price_list_xlsx) -> None:
        with patch(
            "ingestkit_tables.parser_chain.openpyxl.load_workbook",
            side_effect=Exception("File is encrypted"),
        ):
            workbook, errors = chain.parse(str(price_list_xlsx))

        assert workbook.sheets == []
        assert _codes(errors) == [ErrorCode.E_PARSE_PASSWORD]

    def test_corrupt_file(self, chain, corrupt_xlsx) -> None:
        workbook, errors = chain.parse(str(corrupt_xlsx))
        assert workbook.sheets == []
        assert _codes(errors) == [ErrorCode.E_PARSE_CORRUPT]

    def test_empty_file(self, chain, empty_file_xlsx) -> None:
        workbook, errors = chain.parse(str(empty_file_xlsx))
        assert workbook.sheets == []
        assert _codes(errors) == [ErrorCode.E_PARSE_EMPTY]


class TestFileChecks:
    def test_missing_file(self, chain, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            chain.parse(str(tmp_path / "missing.xlsx"))

    def test_unsupported_extension(self, chain, tmp_path) -> None:
        path = tmp_path / "prices.ods"
        path.write_bytes(b"not really")
        workbook, errors = chain.parse(str(path))
        assert workbook.sheets == []
        assert _codes(errors) == [ErrorCode.E_PARSE_UNSUPPORTED]


# ---------------------------------------------------------------------------
# .xls via xlrd
# ---------------------------------------------------------------------------


def _cell(value, ctype=xlrd.XL_CELL_TEXT) -> SimpleNamespace:
    return SimpleNamespace(value=value, ctype=ctype)


def _xls_sheet(name: str, rows: list[list[SimpleNamespace]], merged=(), visibility: int = 0):
    return SimpleNamespace(
        name=name,
        nrows=len(rows),
        row=lambda r: rows[r],
        merged_cells=list(merged),
        visibility=visibility,
    )


def _xls_book(*sheets) -> SimpleNamespace:
    return SimpleNamespace(sheets=lambda: list(sheets), datemode=0)


@pytest.fixture()
def xls_path(tmp_path):
    path = tmp_path / "legacy.xls"
    path.write_bytes(b"\xd0\xcf\x11\xe0 legacy workbook bytes")
    return path


class TestXls:
    def test_cells_and_merges(self, chain, xls_path) -> None:
        rows = [
            [_cell("Price list"), _cell("", xlrd.XL_CELL_EMPTY)],
            [_cell("Code"), _cell("Price")],
            [_cell("A1"), _cell(9.0, xlrd.XL_CELL_NUMBER)],
            [_cell(1, xlrd.XL_CELL_BOOLEAN), _cell(42, xlrd.XL_CELL_ERROR)],
        ]
        book = _xls_book(_xls_sheet("Legacy", rows, merged=[(0, 1, 0, 2)]))
        with patch(OPEN_XLS, return_value=book):
            workbook, errors = chain.parse(str(xls_path))

        assert errors == []
        sheet = workbook.sheets[0]
        assert sheet.parser_used == ParserUsed.XLRD
        assert sheet.cell_rows == [
            ["Price list", ""],
            ["Code", "Price"],
            ["A1", "9"],
            ["TRUE", ""],
        ]
        assert sheet.merges() == [("A1", "B1", "Price list")]

    def test_date_cell(self, chain, xls_path) -> None:
        rows = [[_cell(45292.0, xlrd.XL_CELL_DATE)]]
        with patch(OPEN_XLS, return_value=_xls_book(_xls_sheet("Dates", rows))):
            workbook, _ = chain.parse(str(xls_path))
        assert workbook.sheets[0].cell_rows == [["2024-01-01"]]

    def test_hidden_sheet_is_skipped(self, chain, xls_path) -> None:
        book = _xls_book(
            _xls_sheet("Visible", [[_cell("a")]]),
            _xls_sheet("Hidden", [[_cell("b")]], visibility=1),
        )
        with patch(OPEN_XLS, return_value=book):
            workbook, errors = chain.parse(str(xls_path))

        assert [s.name for s in workbook.sheets] == ["Visible"]
        assert workbook.skipped_reasons == {"Hidden": "W_SHEET_SKIPPED_HIDDEN"}
        assert _codes(errors) == [ErrorCode.W_SHEET_SKIPPED_HIDDEN]

    def test_encrypted(self, chain, xls_path) -> None:
        with patch(OPEN_XLS, side_effect=xlrd.biffh.XLRDError("Workbook is encrypted")):
            workbook, errors = chain.parse(str(xls_path))
        assert workbook.sheets == []
        assert _codes(errors) == [ErrorCode.E_PARSE_PASSWORD]

    def test_unreadable_falls_back_to_pandas(self, chain, xls_path) -> None:
        with patch(OPEN_XLS, side_effect=xlrd.biffh.XLRDError("Unsupported format")), \
                patch("ingestkit_tables.parser_chain.pd.read_excel", side_effect=ValueError("nope")):
            workbook, errors = chain.parse(str(xls_path))
        assert workbook.sheets == []
        assert _codes(errors) == [ErrorCode.E_PARSE_CORRUPT]

    def test_no_sheets(self, chain, xls_path) -> None:
        with patch(OPEN_XLS, return_value=_xls_book()):
            workbook, errors = chain.parse(str(xls_path))
        assert workbook.sheets == []
        assert _codes(errors) == [ErrorCode.E_PARSE_EMPTY]
