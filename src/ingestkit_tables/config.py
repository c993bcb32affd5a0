"""Configuration model for the ingestkit-tables pipeline.

Provides ``TableExtractorConfig`` with all tunable parameters and their
defaults.  Supports loading overrides from YAML or JSON files via the
``from_file()`` classmethod.
"""

from __future__ import annotations

import json
import pathlib

import yaml
from pydantic import BaseModel

from ingestkit_tables.models import LabelPolicy


class TableExtractorConfig(BaseModel):
    """All tunable parameters with sensible defaults.

    Override individual values via constructor kwargs or load a complete
    config from a file with ``TableExtractorConfig.from_file(path)``.
    """

    # --- Identity ---
    parser_version: str = "ingestkit_tables:1.0.0"

    # --- Dense region detection ---
    density_threshold: float = 0.55
    density_weight: float = 0.7
    regularity_weight: float = 0.3
    top_k_per_row: int = 3
    bridge_gap: int = 1
    min_table_rows: int = 2
    min_table_cols: int = 2
    max_tables_per_sheet: int = 20

    # --- Region refinement ---
    sample_window_rows: int = 30
    column_fill_ratio: float = 0.25
    min_column_hits: int = 3
    column_lookahead: int = 2
    empty_row_stop: int = 2

    # --- Header boundary ---
    header_scan_rows: int = 20
    data_row_threshold: float = 0.55
    min_data_run: int = 2
    max_header_depth: int = 6
    default_search_depth: int = 3
    stability_sample_rows: int = 60
    stability_weight: float = 0.75
    header_likelihood_weight: float = 0.25
    keyword_penalty: float = 0.6

    # --- Header labels and column projection ---
    label_policy: LabelPolicy = LabelPolicy.LAST_NON_EMPTY
    label_separator: str = " "
    min_column_values: int = 3
    column_sample_rows: int = 200

    # --- Category labels ---
    detect_category: bool = True
    category_column: bool = False
    category_scan_rows: int = 5

    # --- Limits ---
    max_rows: int = 10_000
    max_cols: int = 512
    skip_hidden_sheets: bool = True
    max_workers: int = 1

    # --- Oracle ---
    oracle_model: str = "qwen2.5:7b"
    oracle_temperature: float = 0.0
    oracle_max_attempts: int = 2
    oracle_snippet_rows: int = 24
    oracle_sample_rows: int = 5
    oracle_reject_confidence: float = 0.8
    cache_ttl_seconds: float = 3600.0

    # --- Backend resilience ---
    backend_timeout_seconds: float = 30.0
    backend_max_retries: int = 2
    backend_backoff_base: float = 1.0

    # --- Logging / PII safety ---
    log_sample_data: bool = False
    log_oracle_prompts: bool = False

    @classmethod
    def from_file(cls, path: str) -> TableExtractorConfig:
        """Load configuration from a YAML or JSON file.

        File format is detected by extension: ``.yaml`` / ``.yml`` for YAML,
        ``.json`` for JSON.  Any keys present in the file override the
        corresponding defaults; keys not present retain their defaults.

        Args:
            path: Filesystem path to the configuration file.

        Returns:
            A fully-populated ``TableExtractorConfig`` instance.

        Raises:
            FileNotFoundError: If *path* does not exist.
            ValueError: If the file extension is not recognized.
        """
        file_path = pathlib.Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        suffix = file_path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            with open(file_path, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        elif suffix == ".json":
            with open(file_path, encoding="utf-8") as fh:
                data = json.load(fh)
        else:
            raise ValueError(
                f"Unsupported config file extension '{suffix}'. "
                "Use .yaml, .yml, or .json."
            )

        if data is None:
            data = {}

        return cls(**data)
