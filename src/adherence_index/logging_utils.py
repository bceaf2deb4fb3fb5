"""
Structured JSONL logging for pipeline steps.

Each script run gets a console handler and a JSONL file under logs/
named <script>_<run_id>.jsonl. Every JSON line carries the timestamp,
run_id, level, logger name and message, plus event_type and context
when logged through log_event().
"""

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd

from adherence_index.paths import paths, ensure_dir


def generate_run_id() -> str:
    """Return a run id of the form YYYYMMDD_HHMMSS_<8 hex chars>."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"{timestamp}_{uuid.uuid4().hex[:8]}"


class JSONLHandler(logging.Handler):
    """Logging handler writing one JSON object per record."""

    def __init__(self, log_path: Path, run_id: str):
        super().__init__()
        self.log_path = log_path
        self.run_id = run_id
        self._file = None

    def _ensure_file(self):
        if self._file is None:
            ensure_dir(self.log_path.parent)
            self._file = open(self.log_path, "a", encoding="utf-8")

    def emit(self, record: logging.LogRecord):
        try:
            self._ensure_file()

            entry = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "run_id": self.run_id,
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
            if hasattr(record, "event_type"):
                entry["event_type"] = record.event_type
            if hasattr(record, "context"):
                entry["context"] = record.context
            if record.exc_info:
                entry["exception"] = self.format(record)

            self._file.write(json.dumps(entry, default=str) + "\n")
            self._file.flush()
        except Exception:
            self.handleError(record)

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None
        super().close()


_LOGGERS: dict[str, logging.Logger] = {}
_RUN_ID: str | None = None


def get_run_id() -> str:
    """Get the current run ID, generating one if needed."""
    global _RUN_ID
    if _RUN_ID is None:
        _RUN_ID = generate_run_id()
    return _RUN_ID


def set_run_id(run_id: str) -> None:
    """Pin the run ID (used by tests and by run-all to share one id)."""
    global _RUN_ID
    _RUN_ID = run_id


def get_logger(
    script_name: str,
    run_id: str | None = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    log_dir: Path | None = None,
) -> logging.Logger:
    """
    Get or create the logger for a pipeline step.

    Args:
        script_name: Step name, e.g. "02_build_adherence_index".
        run_id: Optional run ID; generated or reused when None.
        console_level: Level for stdout output.
        file_level: Level for the JSONL file.
        log_dir: Directory for the JSONL file (defaults to logs/).

    Returns:
        Configured Logger instance.
    """
    if run_id is None:
        run_id = get_run_id()
    else:
        set_run_id(run_id)

    logger_key = f"{script_name}_{run_id}"
    if logger_key in _LOGGERS:
        return _LOGGERS[logger_key]

    logger = logging.getLogger(logger_key)
    logger.setLevel(min(console_level, file_level))
    logger.handlers = []
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(console_handler)

    log_file = Path(log_dir or paths.logs) / f"{script_name}_{run_id}.jsonl"
    jsonl_handler = JSONLHandler(log_file, run_id)
    jsonl_handler.setLevel(file_level)
    logger.addHandler(jsonl_handler)

    _LOGGERS[logger_key] = logger

    log_event(logger, logging.INFO, f"Logger initialized for {script_name}",
              "logger_init", script_name=script_name, run_id=run_id)

    return logger


def log_event(
    logger: logging.Logger,
    level: int,
    message: str,
    event_type: str,
    **context: Any
) -> None:
    """Log a message with an event type and structured context."""
    logger.log(level, message, extra={
        "event_type": event_type,
        "context": context
    })


def log_step_start(logger: logging.Logger, step_name: str, **context: Any) -> None:
    log_event(logger, logging.INFO, f"Starting: {step_name}", "step_start",
              step_name=step_name, **context)


def log_step_end(logger: logging.Logger, step_name: str, **context: Any) -> None:
    log_event(logger, logging.INFO, f"Completed: {step_name}", "step_end",
              step_name=step_name, **context)


def log_qa_check(
    logger: logging.Logger,
    check_name: str,
    passed: bool,
    details: str | None = None,
    **context: Any
) -> None:
    """Log a QA check result; failures are logged at ERROR."""
    status = "PASSED" if passed else "FAILED"
    message = f"QA Check [{check_name}]: {status}"
    if details:
        message += f" - {details}"

    log_event(logger, logging.INFO if passed else logging.ERROR, message, "qa_check",
              check_name=check_name, passed=passed, details=details, **context)


def log_output_written(
    logger: logging.Logger,
    output_path: str | Path,
    row_count: int | None = None,
    **context: Any
) -> None:
    """Log that an output file was written."""
    message = f"Output written: {output_path}"
    if row_count is not None:
        message += f" ({row_count:,} rows)"

    log_event(logger, logging.INFO, message, "output_written",
              output_path=str(output_path), row_count=row_count, **context)


# =============================================================================
# Pipeline events
# =============================================================================

SIGN_NAMES = {1: "better", 0: "no_diff", -1: "worse"}


def log_run_banner(logger: logging.Logger, script_name: str, run_id: str) -> None:
    """Open a step's console output and record a run_start event."""
    logger.info("=" * 60)
    log_event(logger, logging.INFO, f"Starting {script_name}", "run_start",
              script_name=script_name, run_id=run_id)
    logger.info(f"Run ID: {run_id}")
    logger.info("=" * 60)


def log_run_complete(logger: logging.Logger, script_name: str, **summary: Any) -> None:
    """Close a step's console output; summary items are printed one per line."""
    logger.info("=" * 60)
    log_event(logger, logging.INFO, f"{script_name} completed successfully", "run_complete",
              script_name=script_name, **summary)
    for key, value in summary.items():
        logger.info(f"   {key}: {value}")
    logger.info("=" * 60)


def log_sign_counts(
    logger: logging.Logger,
    stage: str,
    signs,
    message: str,
) -> dict[str, int]:
    """
    Count a -1 / 0 / +1 classification series (missing counted separately)
    and log the counts as a classification_counts event.

    Returns:
        {"better": n, "no_diff": n, "worse": n, "missing": n}
    """
    counts = {name: 0 for name in SIGN_NAMES.values()}
    counts["missing"] = 0
    for value in signs:
        if pd.isna(value):
            counts["missing"] += 1
        else:
            counts[SIGN_NAMES[int(value)]] += 1

    log_event(logger, logging.INFO, f"{message} {counts}", "classification_counts",
              stage=stage, counts=counts)
    return counts


def log_undefined_zscore(logger: logging.Logger, stage: str, keys: list) -> None:
    """Warn that z-scores are undefined (identical values) for the given groups."""
    log_event(logger, logging.WARNING,
              f"Undefined z-scores at {stage} stage (identical values): {keys}",
              "undefined_zscore", stage=stage, keys=list(keys))


def log_non_numeric(logger: logging.Logger, n_values: int, measures: list[str]) -> None:
    """Warn that non-numeric estimates were coerced to missing."""
    log_event(logger, logging.WARNING,
              f"{n_values} non-numeric estimates treated as missing in {measures}",
              "non_numeric_estimates", n_values=n_values, measures=list(measures))
