"""Shared test fixtures for ingestkit-tables tests.

Provides a queue-based mock LLM backend, a fake clock, a stub header oracle,
config fixtures, reusable grids, and session-scoped .xlsx file generators.
"""

from __future__ import annotations

import json
import pathlib
import tempfile
from typing import Any

import openpyxl
import pytest
from openpyxl.chart import BarChart, Reference

from ingestkit_tables.config import TableExtractorConfig
from ingestkit_tables.grid import build_grid
from ingestkit_tables.models import Grid


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_config() -> TableExtractorConfig:
    """Return a TableExtractorConfig with all defaults."""
    return TableExtractorConfig()


@pytest.fixture()
def test_config() -> TableExtractorConfig:
    """``TableExtractorConfig`` with test-friendly backend settings."""
    return TableExtractorConfig(
        backend_max_retries=1,
        backend_backoff_base=0.0,
        log_sample_data=True,
    )


# ---------------------------------------------------------------------------
# Mock collaborators
# ---------------------------------------------------------------------------


class MockLLM:
    """Queue-based LLM backend satisfying the ``LLMBackend`` protocol.

    Push responses onto ``classify_responses``; each call pops from the
    front of the queue.

    Special sentinel values:
    - ``"__TIMEOUT__"``: raises ``TimeoutError``.
    - ``"__MALFORMED_JSON__"``: returns a dict wrapping non-JSON text.
    - ``"__JSON_ERROR__"``: raises ``json.JSONDecodeError``.
    """

    def __init__(self) -> None:
        self.classify_responses: list[Any] = []
        self.classify_calls: list[dict[str, Any]] = []

    def enqueue_classify(self, *responses: Any) -> None:
        self.classify_responses.extend(responses)

    def classify(
        self,
        prompt: str,
        model: str,
        temperature: float = 0.1,
        timeout: float | None = None,
    ) -> dict:
        self.classify_calls.append(
            {"prompt": prompt, "model": model, "temperature": temperature, "timeout": timeout}
        )
        if not self.classify_responses:
            raise RuntimeError("MockLLM: no classify responses enqueued")
        response = self.classify_responses.pop(0)

        if response == "__TIMEOUT__":
            raise TimeoutError("MockLLM simulated timeout")
        if response == "__JSON_ERROR__":
            raise json.JSONDecodeError("Expecting value", "<<<not json>>>", 0)
        if response == "__MALFORMED_JSON__":
            return {"raw": "<<<not json>>>"}
        return response


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubOracle:
    """Header oracle returning fixed answers and recording its calls."""

    def __init__(
        self,
        boundary: tuple[int, int] | None = None,
        verdict: tuple[bool, float] | None = None,
    ) -> None:
        self.boundary = boundary
        self.verdict = verdict
        self.snippets: list[list[str]] = []
        self.checked: list[list[str]] = []

    def suggest_header_boundary(self, rows_snippet: list[str]) -> tuple[int, int] | None:
        self.snippets.append(rows_snippet)
        return self.boundary

    def is_likely_data_table(
        self, header: list[str], sample_rows: list[list[str]]
    ) -> tuple[bool, float] | None:
        self.checked.append(header)
        return self.verdict


@pytest.fixture()
def mock_llm() -> MockLLM:
    """Fresh ``MockLLM`` instance with empty response queues."""
    return MockLLM()


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def stub_oracle_factory():
    """Build a ``StubOracle`` with the given answers."""
    return StubOracle


# ---------------------------------------------------------------------------
# Reusable grids
# ---------------------------------------------------------------------------


@pytest.fixture()
def acme_grid() -> Grid:
    """Title, blank row, one header row, two data rows, two trailing blanks."""
    return build_grid(
        [
            ["Acme Corp"],
            [],
            ["Code", "Name", "Price"],
            ["A1", "Widget", "9.99"],
            ["A2", "Gadget", "14.50"],
            [],
            [],
        ]
    )


@pytest.fixture()
def unit_header_grid() -> Grid:
    """Two header rows (second one only a currency marker) over five numeric rows."""
    return build_grid(
        [
            ["SKU", "Price"],
            ["", "USD"],
            ["1001", "10.50"],
            ["1002", "11.50"],
            ["1003", "12.75"],
            ["1004", "8.00"],
            ["1005", "9.25"],
        ]
    )


STOCK_ROWS: list[list[object]] = [
    ["Code", "Name", "Price", "Qty"],
    ["A1", "Hex bolt", "0.10", "100"],
    ["A2", "Flat washer", "0.05", "250"],
    ["A3", "Wing nut", "0.20", "80"],
    ["A4", "Lock nut", "0.15", "120"],
    [],
    [],
    [],
    ["Article", "Description", "Qty", "Cost"],
    ["X-1", "Steel pipe", "4", "15.00"],
    ["X-2", "Copper pipe", "2", "27.50"],
    ["X-3", "Plastic pipe", "9", "3.20"],
]


@pytest.fixture()
def two_block_grid() -> Grid:
    """Two dense blocks separated by three blank rows."""
    return build_grid(STOCK_ROWS)


# ---------------------------------------------------------------------------
# Session-scoped .xlsx Fixture Generators
# ---------------------------------------------------------------------------

_XLSX_TMP_DIR: tempfile.TemporaryDirectory | None = None


def _xlsx_dir() -> pathlib.Path:
    """Lazily create a session-wide temp directory for generated .xlsx files."""
    global _XLSX_TMP_DIR  # noqa: PLW0603
    if _XLSX_TMP_DIR is None:
        _XLSX_TMP_DIR = tempfile.TemporaryDirectory(prefix="ingestkit_tables_test_xlsx_")
    return pathlib.Path(_XLSX_TMP_DIR.name)


MERGED_PRODUCTS = [
    ("P-1001", "Power drill", 120.5, 99.5),
    ("P-1002", "Hand saw", 15.25, 12.75),
    ("P-1003", "Claw hammer", 22.5, 18.5),
    ("P-1004", "Tape measure", 8.75, 6.5),
    ("P-1005", "Spirit level", 30.5, 25.5),
    ("P-1006", "Utility knife", 5.5, 4.25),
]


@pytest.fixture(scope="session")
def price_list_xlsx() -> pathlib.Path:
    """Supplier name, a blank row, then a 4-column table with 10 data rows."""
    path = _xlsx_dir() / "price_list.xlsx"
    if path.exists():
        return path
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Prices"
    ws.append(["Acme Supplies Ltd"])
    ws.append([])
    ws.append(["Code", "Name", "Price", "Qty"])
    for i in range(1, 11):
        ws.append([f"A-{100 + i}", f"Widget {i}", 9.5 + i, i * 10])
    wb.save(path)
    return path


@pytest.fixture(scope="session")
def merged_header_xlsx() -> pathlib.Path:
    """Merged title banner and a two-row header with merged parent labels."""
    path = _xlsx_dir() / "merged_header.xlsx"
    if path.exists():
        return path
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Tools"
    ws.merge_cells("A1:D1")
    ws["A1"] = "Price list 2024"
    ws.merge_cells("A3:B3")
    ws["A3"] = "Product"
    ws.merge_cells("C3:D3")
    ws["C3"] = "Price"
    for col, label in enumerate(["SKU", "Name", "Retail", "Wholesale"], start=1):
        ws.cell(row=4, column=col, value=label)
    for offset, product in enumerate(MERGED_PRODUCTS):
        for col, value in enumerate(product, start=1):
            ws.cell(row=5 + offset, column=col, value=value)
    wb.save(path)
    return path


@pytest.fixture(scope="session")
def multi_sheet_xlsx() -> pathlib.Path:
    """Sheet with two tables, an empty sheet, a hidden sheet and a chart sheet."""
    path = _xlsx_dir() / "multi_sheet.xlsx"
    if path.exists():
        return path
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Stock"
    for row in STOCK_ROWS:
        ws.append(row)

    wb.create_sheet("Empty")

    hidden = wb.create_sheet("Archive")
    hidden.append(["Code", "Price"])
    hidden.append(["Z1", 1.5])
    hidden.append(["Z2", 2.5])
    hidden.sheet_state = "hidden"

    chart_data = wb.create_sheet("ChartData")
    chart_data.append(["Category", "Value"])
    for i in range(1, 6):
        chart_data.append([f"Cat {i}", i * 100])
    chart = BarChart()
    chart.add_data(Reference(chart_data, min_col=2, min_row=1, max_row=6), titles_from_data=True)
    chart.set_categories(Reference(chart_data, min_col=1, min_row=2, max_row=6))
    chartsheet = wb.create_chartsheet("Chart")
    chartsheet.add_chart(chart)

    wb.save(path)
    return path


@pytest.fixture(scope="session")
def corrupt_xlsx() -> pathlib.Path:
    """Bytes that are neither a zip archive nor any spreadsheet format."""
    path = _xlsx_dir() / "corrupt.xlsx"
    if not path.exists():
        path.write_bytes(b"this is definitely not a spreadsheet" * 10)
    return path


@pytest.fixture(scope="session")
def empty_file_xlsx() -> pathlib.Path:
    """Zero-byte file with an .xlsx extension."""
    path = _xlsx_dir() / "empty_file.xlsx"
    if not path.exists():
        path.write_bytes(b"")
    return path
