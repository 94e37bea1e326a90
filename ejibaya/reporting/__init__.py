"""Reporting module for ejibaya.

Writes canonical records to delimited files.
"""

from ejibaya.reporting.csv_export import write_canonical_csv

__all__ = ["write_canonical_csv"]
