"""Run export and reference import."""

from llm_vetting.output.csv_reader import parse_reference_csv
from llm_vetting.output.csv_writer import (
    CSV_COLUMNS,
    export_run_to_csv,
    export_run_to_json,
    write_run_exports,
)

__all__ = [
    "CSV_COLUMNS",
    "export_run_to_csv",
    "export_run_to_json",
    "parse_reference_csv",
    "write_run_exports",
]
