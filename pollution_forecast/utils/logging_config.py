"""Logging setup for back-test runs: console output plus JSON-lines files."""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def pair_context(model_id: str, split_id: Optional[int] = None, **fields: Any) -> Dict[str, Any]:
    """
    ``extra`` mapping that tags a log record with its (model, split) pair.

    Usage:
        logger.warning("...", extra=pair_context("var", 2, error_type="FitError"))
    """
    props = {"model_id": model_id}
    if split_id is not None:
        props["split_id"] = split_id
    props.update(fields)
    return {"props": props}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; pair context becomes top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(getattr(record, "props", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class PairFailureFilter(logging.Filter):
    """Keeps records tagged with a pair, plus anything at ERROR or above."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR:
            return True
        return "model_id" in (getattr(record, "props", None) or {})


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = "logs",
    run_name: str = "backtest",
) -> None:
    """
    Configure the root logger for a back-test run.

    Args:
        log_level: Logging level (INFO, DEBUG, etc.)
        log_dir: Directory for JSON-lines files; None logs to the console only
        run_name: Prefix of the log files. ``<run_name>.jsonl`` receives every
            record, ``<run_name>_failures.jsonl`` the pair-level warnings and errors
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        run_handler = logging.FileHandler(log_path / f"{run_name}.jsonl")
        run_handler.setLevel(log_level)
        run_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(run_handler)

        failure_handler = logging.FileHandler(log_path / f"{run_name}_failures.jsonl")
        failure_handler.setLevel(logging.WARNING)
        failure_handler.addFilter(PairFailureFilter())
        failure_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(failure_handler)

    logging.getLogger(__name__).info(f"Logging configured with level {log_level}")
