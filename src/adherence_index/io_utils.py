"""
Atomic writes and read helpers.

Outputs are written to a temporary file in the target directory and then
renamed over the destination, so a failed write never leaves a partial
file behind. Leftover .tmp files are treated as failures.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
import yaml

from adherence_index.paths import ensure_dir


def atomic_write(
    target_path: Path | str,
    write_func: Callable,
    *args,
    **kwargs
) -> Path:
    """
    Write to a file atomically using a temporary file and rename.

    Args:
        target_path: Final destination path.
        write_func: Called as write_func(temp_path, *args, **kwargs).

    Returns:
        The target path.

    Raises:
        Exception: Re-raises any exception from write_func after cleanup.
    """
    target_path = Path(target_path)
    ensure_dir(target_path.parent)

    # Same directory keeps the rename on one filesystem
    temp_fd, temp_name = tempfile.mkstemp(
        suffix=".tmp",
        prefix=f"{target_path.stem}_",
        dir=target_path.parent
    )
    temp_path = Path(temp_name)

    try:
        os.close(temp_fd)
        write_func(temp_path, *args, **kwargs)
        temp_path.replace(target_path)
        return target_path
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def atomic_write_json(target_path: Path | str, data: Any, indent: int = 2) -> Path:
    """Write JSON data atomically."""
    def write_json(temp_path: Path, data: Any, indent: int):
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent, default=str)

    return atomic_write(target_path, write_json, data, indent)


def atomic_write_parquet(target_path: Path | str, df: pd.DataFrame, **kwargs) -> Path:
    """
    Write a DataFrame to Parquet atomically.

    Extra keyword arguments go to pyarrow.parquet.write_table.
    """
    def write_parquet(temp_path: Path, df: pd.DataFrame, **kwargs):
        table = pa.Table.from_pandas(df, preserve_index=False)
        pq.write_table(table, temp_path, **kwargs)

    return atomic_write(target_path, write_parquet, df, **kwargs)


def atomic_write_csv(target_path: Path | str, df: pd.DataFrame) -> Path:
    """Write a DataFrame to CSV atomically (no index column)."""
    def write_csv(temp_path: Path, df: pd.DataFrame):
        df.to_csv(temp_path, index=False)

    return atomic_write(target_path, write_csv, df)


# =============================================================================
# Read utilities
# =============================================================================

def _require_file(file_path: Path | str, kind: str) -> Path:
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"{kind} file not found: {file_path}")
    return file_path


def read_parquet(file_path: Path | str) -> pd.DataFrame:
    """Read a Parquet file; raises FileNotFoundError when absent."""
    return pd.read_parquet(_require_file(file_path, "Parquet"))


def read_csv(file_path: Path | str, **kwargs) -> pd.DataFrame:
    """Read a CSV file; raises FileNotFoundError when absent."""
    return pd.read_csv(_require_file(file_path, "CSV"), **kwargs)


def read_json(file_path: Path | str) -> Any:
    with open(_require_file(file_path, "JSON"), "r", encoding="utf-8") as f:
        return json.load(f)


def read_yaml(file_path: Path | str) -> Any:
    with open(_require_file(file_path, "YAML"), "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def clean_tmp_files(directory: Path | str, pattern: str = "*.tmp") -> list[Path]:
    """Remove leftover .tmp files from failed atomic writes."""
    directory = Path(directory)
    removed = []

    if directory.exists():
        for tmp_file in directory.glob(pattern):
            tmp_file.unlink()
            removed.append(tmp_file)

    return removed
