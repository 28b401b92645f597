"""Structured logging configuration.

Provides:
  - JSON log lines for batch and CI runs, with the analysis context
    (contract, callable, configuration) grouped under ``analysis``
  - Colored single-line output for interactive use
  - A filter that stamps the contract/callable under analysis on records
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO


ANALYSIS_FIELDS = ("contract", "callable", "configuration", "issue_kind", "depth")

# Loggers that emit one record per traversal step or per query
_CHATTY_LOGGERS = ("solflow.core.taint", "solflow.core.dataflow")


def _analysis_context(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in ANALYSIS_FIELDS if getattr(record, key, None) not in (None, "")}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": {"module": record.module, "function": record.funcName, "line": record.lineno},
        }

        context = _analysis_context(record)
        if context:
            entry["analysis"] = context

        if record.exc_info and record.exc_info[1]:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else "Unknown",
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    """Colored human-readable formatter for interactive runs."""

    LEVEL_COLORS = {
        logging.DEBUG: 36,
        logging.INFO: 32,
        logging.WARNING: 33,
        logging.ERROR: 31,
        logging.CRITICAL: 35,
    }

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S")
        level = f"{stamp} {record.levelname:<8s}"
        code = self.LEVEL_COLORS.get(record.levelno)
        if code is not None:
            level = f"\033[{code}m{level}\033[0m"
        parts = [level, f"{record.name}:"]

        scope = ".".join(
            str(getattr(record, key)) for key in ("contract", "callable") if getattr(record, key, None)
        )
        if scope:
            parts.append(f"[{scope}]")
        parts.append(record.getMessage())
        configuration = getattr(record, "configuration", None)
        if configuration:
            parts.append(f"(configuration={configuration})")

        line = " ".join(parts)
        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    env: str = "development",
    log_level: str = "INFO",
    stream: TextIO | None = None,
) -> logging.Handler:
    """Install a single root handler and return it.

    Args:
        env: Application environment (development/staging/production)
        log_level: Minimum log level
        stream: Output stream, stdout by default
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if env in ("staging", "production") else DevFormatter())
    root.addHandler(handler)

    # Per-step traversal detail only shows up when explicitly debugging
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.INFO)
    return handler


class AnalysisLogFilter(logging.Filter):
    """Stamp the contract/callable under analysis on every record.

    Fields already set through ``extra=`` are left alone.
    """

    def __init__(self, contract: str = "", callable_name: str = "") -> None:
        super().__init__()
        self.contract = contract
        self.callable_name = callable_name

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "contract", None):
            record.contract = self.contract  # type: ignore[attr-defined]
        if not getattr(record, "callable", None):
            record.callable = self.callable_name  # type: ignore[attr-defined]
        return True
