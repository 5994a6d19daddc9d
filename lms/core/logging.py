"""Logging configuration for the lms service.

Two output formats, chosen by LOG_JSON:

  _ContainerFormatter  one human-readable line per record; WARNING and
                       above get a [file:line] suffix
  _JsonFormatter       JSON Lines for the log pipeline; request context
                       (request_id, method, path, route, ...) and aggregate
                       degradation context (component, step) become
                       top-level keys

A degraded aggregate logs a WARNING with ``component`` and ``step``
extras, so "which leaderboard step keeps failing" is a log query rather
than a grep.  The counts live in Prometheus (lms.core.metrics).
"""

from __future__ import annotations

import json
import logging
import sys


class _ContainerFormatter(logging.Formatter):
    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        # Milliseconds go before the +0000 offset.
        return f"{base[:-5]}.{int(record.msecs):03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    _CONTEXT_FIELDS = (
        "request_id",
        "method",
        "path",
        "route",
        "status_code",
        "duration_ms",
        "component",
        "step",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Send everything to stdout with the chosen formatter.

    Client libraries (uvicorn, httpx, the Google/gRPC stack) are held at
    WARNING or above regardless of ``level_name``.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in (
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "httpcore",
        "httpx",
        "google",
        "grpc",
    ):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
