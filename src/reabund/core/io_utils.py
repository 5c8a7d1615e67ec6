"""
I/O utilities for DataFrame serialization.

Provides consistent handling of output formats (TSV/CSV/Parquet) across the codebase.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import polars as pl

OutputFormat = Literal["tsv", "csv", "parquet"]

FORMAT_SUFFIXES: dict[str, str] = {
    "tsv": ".tsv",
    "csv": ".csv",
    "parquet": ".parquet",
    "json": ".json",
}


def write_dataframe(
    df: pl.DataFrame,
    path: Path,
    output_format: OutputFormat = "tsv",
) -> None:
    """
    Write DataFrame to file in specified format.

    For Parquet output, uses zstd compression for optimal size/speed tradeoff.

    Args:
        df: Polars DataFrame to write.
        path: Output file path.
        output_format: Output format - 'tsv', 'csv' or 'parquet'.

    Example:
        >>> df = pl.DataFrame({"a": [1, 2, 3]})
        >>> write_dataframe(df, Path("output.parquet"), "parquet")
    """
    if output_format == "parquet":
        df.write_parquet(path, compression="zstd")
    elif output_format == "csv":
        df.write_csv(path)
    else:
        df.write_csv(path, separator="\t")

