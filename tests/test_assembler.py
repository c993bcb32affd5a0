"""Tests for table assembly and category label search."""

from __future__ import annotations

from ingestkit_tables.assembler import (
    assemble_table,
    find_nearest_category,
    with_category_column,
)
from ingestkit_tables.config import TableExtractorConfig
from ingestkit_tables.grid import build_grid, slice_grid
from ingestkit_tables.models import LabelPolicy, Rect, TableResult


class TestAssembleTable:
    def test_acme_block(self, acme_grid, sample_config) -> None:
        block = slice_grid(acme_grid, Rect(r1=2, c1=0, r2=4, c2=2))
        result = assemble_table(block, 1, sample_config)
        assert result.header == ["Code", "Name", "Price"]
        assert result.rows == [["A1", "Widget", "9.99"], ["A2", "Gadget", "14.50"]]

    def test_empty_rows_are_dropped(self, sample_config) -> None:
        block = [["Code", "Price"], ["a", "1"], ["", ""], ["b", "2"], ["", ""]]
        result = assemble_table(block, 1, sample_config)
        assert result.rows == [["a", "1"], ["b", "2"]]

    def test_headerless_block(self, sample_config) -> None:
        result = assemble_table([["a", "b"]], 0, sample_config)
        assert result.header == ["undefined_1", "undefined_2"]
        assert result.rows == [["a", "b"]]

    def test_join_policy(self, unit_header_grid) -> None:
        config = TableExtractorConfig(label_policy=LabelPolicy.JOIN)
        result = assemble_table(unit_header_grid, 2, config)
        assert result.header == ["SKU", "Price USD"]
        assert len(result.rows) == 5

    def test_rows_match_header_width(self, sample_config) -> None:
        block = [["Code", "", ""], ["a", "", "1"], ["b", "", "2"], ["c", "", "3"]]
        result = assemble_table(block, 1, sample_config)
        assert result.header == ["Code", "undefined_3"]
        assert all(len(row) == len(result.header) for row in result.rows)

    def test_sparse_placeholder_column_is_projected_out(self, sample_config) -> None:
        block = [["Code", "Price", ""], ["a", "1", ""], ["b", "2", ""]]
        result = assemble_table(block, 1, sample_config)
        assert result.header == ["Code", "Price"]

    def test_stray_value_under_unlabelled_column_is_projected_out(self, sample_config) -> None:
        block = [["Code", "", "Price"], ["a", "", "1"], ["b", "x", "2"], ["c", "", "3"]]
        result = assemble_table(block, 1, sample_config)
        assert result.header == ["Code", "Price"]
        assert result.rows == [["a", "1"], ["b", "2"], ["c", "3"]]

    def test_to_json(self, sample_config) -> None:
        result = assemble_table([["Code", "Price"], ["a", "1"]], 1, sample_config)
        assert result.to_json() == '{"header":["Code","Price"],"rows":[["a","1"]]}'


class TestCategoryColumn:
    def test_appends_column(self) -> None:
        result = with_category_column(TableResult(header=["A"], rows=[["1"], ["2"]]), "Tools")
        assert result.header == ["A", "category"]
        assert result.rows == [["1", "Tools"], ["2", "Tools"]]


class TestFindNearestCategory:
    def test_title_above(self, acme_grid) -> None:
        assert find_nearest_category(acme_grid, Rect(r1=2, c1=0, r2=4, c2=2)) == "Acme Corp"

    def test_line_below(self) -> None:
        grid = build_grid(
            [["Code", "Price"], ["a", "1"], ["b", "2"], [], ["Discontinued items"]]
        )
        assert find_nearest_category(grid, Rect(r1=0, c1=0, r2=2, c2=1)) == "Discontinued items"

    def test_numeric_lines_are_skipped(self) -> None:
        grid = build_grid([["Tools"], ["Total", "100"], ["Code", "Price"], ["a", "1"]])
        assert find_nearest_category(grid, Rect(r1=2, c1=0, r2=3, c2=1)) == "Tools"

    def test_distinct_values_are_joined(self) -> None:
        grid = build_grid([["Tools", "Tools", "Hand"], ["A", "B", "C"], ["a", "b", "c"]])
        assert find_nearest_category(grid, Rect(r1=1, c1=0, r2=2, c2=2)) == "Tools / Hand"

    def test_scan_window(self) -> None:
        rows: list[list[object]] = [["Far title"], [], [], [], [], [], ["A", "B"], ["a", "b"]]
        grid = build_grid(rows)
        rect = Rect(r1=6, c1=0, r2=7, c2=1)
        assert find_nearest_category(grid, rect, scan_rows=5) is None
        assert find_nearest_category(grid, rect, scan_rows=6) == "Far title"

    def test_only_region_columns(self) -> None:
        grid = build_grid([["", "", "", "Side note"], ["A", "B", "", ""], ["a", "b", "", ""]])
        assert find_nearest_category(grid, Rect(r1=1, c1=0, r2=2, c2=1)) is None
