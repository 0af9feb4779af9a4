"""Leveled, structured log files partitioned by UTC day with a retention window.

Records are written through the standard ``logging`` machinery:

* every record that passes the threshold lands in ``app-YYYY-MM-DD.log``
* error records are mirrored to ``error-YYYY-MM-DD.log``
* files whose mtime is older than the retention window are removed when the
  sink is created

Each line looks like::

    [2026-10-19T08:15:02.114Z] [WARN] High memory usage detected {"heap_used_mb": "612.40"}
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

from dub.core.security import SecretStore

LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}
LEVEL_RANKS = {"error": 0, "warn": 1, "info": 2, "debug": 3}
DEFAULT_LEVEL = "info"
RETENTION_DAYS = 7

_LEVEL_LABELS = {
    logging.CRITICAL: "ERROR",
    logging.ERROR: "ERROR",
    logging.WARNING: "WARN",
    logging.INFO: "INFO",
    logging.DEBUG: "DEBUG",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def should_log(level: str, threshold: str) -> bool:
    """True when *level* is at or above the *threshold* verbosity."""
    return LEVEL_RANKS[level] <= LEVEL_RANKS.get(threshold, LEVEL_RANKS[DEFAULT_LEVEL])


def _mask_value(value):
    if isinstance(value, str):
        return SecretStore.mask_for_logging(value)
    if isinstance(value, dict):
        return {k: _mask_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_mask_value(v) for v in value]
    return value


class MaskingFilter(logging.Filter):
    """Redacts credentials in messages and metadata before formatting."""

    def filter(self, record):
        # shared by several handlers; mask each record once
        if getattr(record, "_dub_masked", False):
            return True
        record._dub_masked = True
        message = record.getMessage()
        record.msg = SecretStore.mask_for_logging(message)
        record.args = None
        meta = getattr(record, "meta", None)
        if meta:
            record.meta = _mask_value(meta)
        return True


class RecordFormatter(logging.Formatter):
    """Render ``[timestamp] [LEVEL] message {metadata}`` lines."""

    def format(self, record):
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )
        level = _LEVEL_LABELS.get(record.levelno, record.levelname)
        meta = dict(getattr(record, "meta", None) or {})
        if record.exc_info and "stack" not in meta:
            meta["stack"] = SecretStore.mask_for_logging(self.formatException(record.exc_info))
        line = f"[{timestamp}] [{level}] {record.getMessage()}"
        if meta:
            line += " " + json.dumps(meta, default=str, ensure_ascii=False)
        return line


class DailyFileHandler(logging.FileHandler):
    """Append-only file handler that switches files when the UTC day changes."""

    def __init__(self, log_dir, prefix, clock=None):
        self.log_dir = Path(log_dir)
        self.prefix = prefix
        self._clock = clock or _utc_now
        self._day = self._today()
        super().__init__(self.path_for(self._day), mode="a", encoding="utf-8", delay=True)

    def _today(self) -> str:
        return self._clock().strftime("%Y-%m-%d")

    def path_for(self, day: str) -> Path:
        return self.log_dir / f"{self.prefix}-{day}.log"

    @property
    def current_path(self) -> Path:
        return Path(self.baseFilename)

    def emit(self, record):
        day = self._today()
        if day != self._day:
            self._day = day
            if self.stream is not None:
                self.stream.close()
                self.stream = None
            self.baseFilename = os.path.abspath(self.path_for(day))
        super().emit(record)


class LogSink:
    """Owns the application logger and its file handlers."""

    def __init__(
        self,
        log_dir,
        level: str = DEFAULT_LEVEL,
        development: bool = True,
        name: str = "dub",
        clock=None,
        console: bool = True,
        retention_days: int = RETENTION_DAYS,
    ):
        self.log_dir = Path(log_dir)
        self.threshold = level if level in LEVEL_RANKS else DEFAULT_LEVEL
        self.development = development
        self.retention_days = retention_days

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            print(f"Failed to create log directory {self.log_dir}: {exc}", file=sys.stderr)

        self.logger = logging.getLogger(name)
        replaced = any(getattr(h, "sink", None) is not None for h in self.logger.handlers)
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()
        self.logger.setLevel(LEVELS[self.threshold])
        self.logger.propagate = False

        formatter = RecordFormatter()
        masking = MaskingFilter()

        self.app_handler = DailyFileHandler(self.log_dir, "app", clock=clock)
        self.error_handler = DailyFileHandler(self.log_dir, "error", clock=clock)
        self.error_handler.setLevel(logging.ERROR)
        handlers = [self.app_handler, self.error_handler]

        if console:
            # warnings and errors always reach the console, the rest only in development
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.DEBUG if development else logging.WARNING)
            handlers.append(console_handler)

        for handler in handlers:
            handler.sink = self
            handler.addFilter(masking)
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)
        self._handlers = handlers

        if replaced:
            self.warn(f"Log sink on logger {name!r} replaced a previously active sink")
        self.cleanup_old_logs()

    @property
    def log_file(self) -> Path:
        return self.app_handler.current_path

    @property
    def error_file(self) -> Path:
        return self.error_handler.current_path

    def log(self, level: str, message: str, meta: dict | None = None, exc_info=None):
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        self.logger.log(LEVELS[level], message, extra={"meta": dict(meta or {})}, exc_info=exc_info)

    def error(self, message: str, meta: dict | None = None, exc_info=None):
        self.log("error", message, meta, exc_info=exc_info)

    def warn(self, message: str, meta: dict | None = None):
        self.log("warn", message, meta)

    def info(self, message: str, meta: dict | None = None):
        self.log("info", message, meta)

    def debug(self, message: str, meta: dict | None = None):
        self.log("debug", message, meta)

    def cleanup_old_logs(self, now: float | None = None) -> int:
        """Delete files older than the retention window. Never raises."""
        cutoff = (time.time() if now is None else now) - self.retention_days * 24 * 60 * 60
        try:
            entries = list(self.log_dir.iterdir())
        except OSError as exc:
            self.warn(f"Failed to clean old logs: {exc}")
            return 0

        removed = 0
        for path in entries:
            try:
                if path.is_file() and path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError as exc:
                self.warn(f"Failed to remove old log {path.name}: {exc}")
        if removed:
            self.debug(f"Removed {removed} expired log file(s)")
        return removed

    def close(self):
        """Detach and close this sink's handlers only."""
        for handler in self._handlers:
            self.logger.removeHandler(handler)
            handler.close()
        self._handlers = []
