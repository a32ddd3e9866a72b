"""
Structured logging for dmn-executor.

- Configurable level (DEBUG, INFO, WARNING, ERROR)
- Console handler on stderr; stdout carries only the JSON result document
- Optional log file (DMN_EXECUTOR_LOG_FILE)
- Helpers for pipeline steps and evaluation summaries
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

LOG_LEVEL = os.getenv("DMN_EXECUTOR_LOG_LEVEL", "WARNING").upper()
LOG_FILE = os.getenv("DMN_EXECUTOR_LOG_FILE", "").strip()


def configure_logging(
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    log_to_console: bool = True,
) -> None:
    """Configure the root and dmn_executor loggers. Call once per process."""
    level_value = getattr(logging, (level or LOG_LEVEL).upper(), logging.WARNING)
    log_file = log_file or (Path(LOG_FILE) if LOG_FILE else None)

    root = logging.getLogger()
    root.setLevel(level_value)
    # Avoid duplicate handlers when called again (tests, embedding)
    for h in list(root.handlers):
        root.removeHandler(h)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level_value)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        root.addHandler(file_handler)
    if log_to_console:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(level_value)
        console.setFormatter(logging.Formatter("%(levelname)s | %(name)s | %(message)s"))
        root.addHandler(console)

    logging.getLogger("dmn_executor").setLevel(level_value)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module (e.g. dmn_executor.services.pipeline)."""
    return logging.getLogger(name)


def log_pipeline_step(
    logger: logging.Logger,
    step: str,
    model_path: str,
    duration_sec: Optional[float] = None,
    success: bool = True,
    error: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Log a pipeline step (e.g. resolve_resources, compile, select_model, dispatch)."""
    payload = {
        "event": "pipeline_step",
        "step": step,
        "model_path": model_path,
        "duration_sec": round(duration_sec, 4) if duration_sec is not None else None,
        "success": success,
        "error": error,
        "ts": datetime.now(timezone.utc).isoformat(),
    }
    if extra:
        payload.update(extra)
    if success:
        logger.info("Pipeline: %s", json.dumps(payload, default=str))
    else:
        logger.warning("Pipeline: %s", json.dumps(payload, default=str))


def log_evaluation_summary(
    logger: logging.Logger,
    model_name: str,
    total: int,
    failed: int,
    skipped: int,
    duration_sec: Optional[float] = None,
) -> None:
    """Log the outcome of one evaluation call."""
    payload = {
        "event": "evaluation",
        "model": model_name,
        "decisions": total,
        "failed": failed,
        "skipped": skipped,
        "duration_sec": round(duration_sec, 4) if duration_sec is not None else None,
        "ts": datetime.now(timezone.utc).isoformat(),
    }
    level = logging.WARNING if (failed or skipped) else logging.INFO
    logger.log(level, "Evaluation: %s", json.dumps(payload, default=str))
