"""
Hashing and provenance sidecars.

Each Parquet output is accompanied by <stem>_metadata.json recording the
run id, the hashes of the raw inputs and of params.yml, the git commit and
the versions of the numerical libraries that produced it.
"""

import hashlib
import json
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from adherence_index.io_utils import atomic_write_json, read_yaml
from adherence_index.paths import get_project_root

PROVENANCE_LIBRARIES = ["pandas", "numpy", "scipy", "pyarrow", "yaml"]


def hash_file(file_path: Path | str, algorithm: str = "sha256") -> str:
    """
    Compute the hex digest of a file, reading it in chunks.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Cannot hash non-existent file: {file_path}")

    hasher = hashlib.new(algorithm)
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def hash_dict(data: dict, algorithm: str = "sha256") -> str:
    """Hash a dictionary by its sorted-key JSON serialization."""
    content = json.dumps(data, sort_keys=True, default=str)
    hasher = hashlib.new(algorithm)
    hasher.update(content.encode("utf-8"))
    return hasher.hexdigest()


def hash_config(config_path: Path | str) -> str:
    """
    Content hash of a YAML config: parsed and re-serialized with sorted
    keys, so comment or whitespace edits do not change it.
    """
    return hash_dict(read_yaml(config_path) or {})


def get_git_commit() -> str | None:
    """Short commit hash of the working tree, or None outside git."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short=8", "HEAD"],
            capture_output=True,
            text=True,
            cwd=get_project_root(),
            timeout=5
        )
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def get_library_versions() -> dict[str, str]:
    versions = {"python": sys.version.split()[0]}
    for lib in PROVENANCE_LIBRARIES:
        try:
            module = __import__(lib)
        except ImportError:
            versions[lib] = "not installed"
            continue
        versions[lib] = getattr(module, "__version__", "unknown")
    return versions


def create_metadata_sidecar(
    output_path: Path | str,
    run_id: str,
    input_files: list[Path | str] | None = None,
    config_files: list[Path | str] | None = None,
    parameters: dict[str, Any] | None = None,
    row_count: int | None = None,
) -> dict[str, Any]:
    """
    Build the provenance dictionary for an output file.

    Input and config files that do not exist are skipped rather than
    failing, since the sidecar describes what was available at run time.
    """
    output_path = Path(output_path)

    metadata: dict[str, Any] = {
        "output_file": output_path.name,
        "output_path": str(output_path),
        "run_id": run_id,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "git_commit": get_git_commit(),
        "library_versions": get_library_versions(),
    }

    if input_files:
        metadata["input_file_hashes"] = {
            Path(f).name: hash_file(f) for f in input_files if Path(f).exists()
        }
    if config_files:
        metadata["config_hashes"] = {
            Path(f).name: hash_config(f) for f in config_files if Path(f).exists()
        }
    if parameters:
        metadata["parameters"] = parameters
    if row_count is not None:
        metadata["row_count"] = row_count
    if output_path.exists():
        metadata["output_hash"] = hash_file(output_path)

    return metadata


def write_metadata_sidecar(
    output_path: Path | str,
    run_id: str,
    input_files: list[Path | str] | None = None,
    config_files: list[Path | str] | None = None,
    parameters: dict[str, Any] | None = None,
    row_count: int | None = None,
) -> Path:
    """Write <stem>_metadata.json next to output_path and return its path."""
    output_path = Path(output_path)
    metadata = create_metadata_sidecar(
        output_path=output_path,
        run_id=run_id,
        input_files=input_files,
        config_files=config_files,
        parameters=parameters,
        row_count=row_count,
    )

    sidecar_path = output_path.parent / f"{output_path.stem}_metadata.json"
    atomic_write_json(sidecar_path, metadata)
    return sidecar_path
