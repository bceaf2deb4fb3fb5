"""
Project root detection and canonical paths.

Every script resolves file locations through this module instead of
relative ../ paths. The repository root is marked by a .project-root file.
"""

from pathlib import Path
from typing import Union

_PROJECT_ROOT: Path | None = None


def get_project_root() -> Path:
    """
    Find and return the project root directory.

    Walks upward from this file until a directory containing the
    .project-root marker is found. The result is cached.

    Returns:
        Path to the project root directory.

    Raises:
        FileNotFoundError: If no .project-root marker is found.
    """
    global _PROJECT_ROOT

    if _PROJECT_ROOT is not None:
        return _PROJECT_ROOT

    current = Path(__file__).resolve().parent

    for _ in range(10):
        if (current / ".project-root").exists():
            _PROJECT_ROOT = current
            return _PROJECT_ROOT

        parent = current.parent
        if parent == current:
            break
        current = parent

    raise FileNotFoundError(
        "Could not find .project-root marker. "
        "Run from within the adherence index repository."
    )


def get_path(*parts: str) -> Path:
    """
    Resolve a path relative to the project root.

    Example:
        >>> get_path("data", "processed", "index")
        PosixPath('/path/to/project/data/processed/index')
    """
    return get_project_root() / Path(*parts)


class Paths:
    """Canonical locations of configs, data, logs and outputs."""

    @property
    def root(self) -> Path:
        return get_project_root()

    # Config
    @property
    def configs(self) -> Path:
        return get_path("configs")

    @property
    def params_yml(self) -> Path:
        return get_path("configs", "params.yml")

    # Raw inputs
    @property
    def data_raw(self) -> Path:
        return get_path("data", "raw")

    # Processed
    @property
    def data_processed(self) -> Path:
        return get_path("data", "processed")

    @property
    def processed_measures(self) -> Path:
        return get_path("data", "processed", "measures")

    @property
    def processed_index(self) -> Path:
        return get_path("data", "processed", "index")

    # Final tables handed to the reporter
    @property
    def data_final(self) -> Path:
        return get_path("data", "final")

    @property
    def logs(self) -> Path:
        return get_path("logs")


paths = Paths()


def ensure_dir(path: Union[str, Path]) -> Path:
    """Create a directory (and parents) if needed and return it as a Path."""
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p
