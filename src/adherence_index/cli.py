"""
Console entry points for the pipeline scripts.

Installed through [project.scripts] in pyproject.toml:

    adherence-index-reshape     # step 01
    adherence-index-build       # step 02
    adherence-index-report      # step 03
    adherence-index-run-all     # steps 01-03 in order

Each command runs the matching file in scripts/ with the current
interpreter from the project root.
"""

import subprocess
import sys

from adherence_index.paths import get_project_root

PIPELINE_STEPS = [
    ("01_reshape_measures.py", "Loading and reshaping measures"),
    ("02_build_adherence_index.py", "Building adherence indices"),
    ("03_build_report_tables.py", "Building report tables"),
]


def _run_script(script_name: str) -> int:
    """Run a pipeline script and return its exit code."""
    script_path = get_project_root() / "scripts" / script_name

    if not script_path.exists():
        print(f"Error: Script not found: {script_path}", file=sys.stderr)
        return 1

    result = subprocess.run([sys.executable, str(script_path)], cwd=get_project_root())
    return result.returncode


def run_01_reshape() -> int:
    return _run_script("01_reshape_measures.py")


def run_02_build() -> int:
    return _run_script("02_build_adherence_index.py")


def run_03_report() -> int:
    return _run_script("03_build_report_tables.py")


def run_all() -> int:
    """Run every step in order; stop at and return the first non-zero exit code."""
    print("=" * 60)
    print("Philadelphia Adherence Index - Full Pipeline")
    print("=" * 60)

    for script_name, description in PIPELINE_STEPS:
        print(f"\n[{description}]")
        print("-" * 40)

        exit_code = _run_script(script_name)
        if exit_code != 0:
            print(f"\nPipeline failed at: {script_name}")
            return exit_code

    print("\n" + "=" * 60)
    print("Full pipeline completed successfully")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(run_all())
