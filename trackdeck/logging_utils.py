"""Logging setup for TrackDeck.

The CLI calls :func:`setup_logging` once, before any subcommand runs. Output
goes to a rotating per-user log file and to the console. The audio backend
logs per-poll position lines tagged ``[audio.trace]``; those are dropped
unless the ``trace`` preset or ``TRACKDECK_AUDIO_TRACE=1`` asks for them.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import time
from enum import Enum
from pathlib import Path
from typing import Optional

from .platform_paths import get_log_dir


DEFAULT_LOG_FILENAME = "trackdeck.log"
AUDIO_TRACE_ENV = "TRACKDECK_AUDIO_TRACE"


class LogMode(str, Enum):
    """Console presets: quiet keeps warnings only, trace adds audio poll lines at DEBUG."""

    QUIET = "quiet"
    NORMAL = "normal"
    TRACE = "trace"


def get_default_log_path() -> Path:
    """Per-user log file, or one in the cwd when that directory cannot be created."""
    log_dir = get_log_dir()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        log_dir = Path.cwd()
    return log_dir / DEFAULT_LOG_FILENAME


def _parse_log_mode(mode: LogMode | str | None) -> LogMode:
    if isinstance(mode, LogMode):
        return mode
    try:
        return LogMode((mode or "").lower())
    except ValueError:
        return LogMode.NORMAL


class _AudioTraceFilter(logging.Filter):
    """Drops ``[audio.trace]`` records unless tracing is on."""

    def __init__(self, enabled: bool = False) -> None:
        super().__init__()
        self.enabled = enabled

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if "[audio.trace]" not in record.getMessage():
            return True
        if self.enabled:
            return True
        return os.environ.get(AUDIO_TRACE_ENV, "").strip().lower() in {"1", "true", "yes", "on"}


def setup_logging(
    *,
    level: str | int = "INFO",
    log_file: Optional[str | Path] = None,
    json_format: bool = False,
    logger_name: Optional[str] = None,
    log_mode: LogMode | str | None = None,
    add_console: bool = True,
) -> logging.Logger:
    """Configure logging for the application.

    - level: str or int (DEBUG/INFO/WARNING/ERROR)
    - log_file: path for rotating file handler (default: per-user dir)
    - json_format: if True, use a key=value single-line format
    - logger_name: root logger by default; can scope to a sub-logger
    - log_mode: quiet/normal/trace preset
    - add_console: add a console StreamHandler in addition to file handler

    Calling it again for the same logger only updates the levels.
    """
    mode = _parse_log_mode(log_mode)
    resolved_level = getattr(logging, level.upper(), logging.INFO) if isinstance(level, str) else int(level)
    if mode is LogMode.TRACE:
        resolved_level = logging.DEBUG
    console_level = max(logging.WARNING, resolved_level) if mode is LogMode.QUIET else resolved_level

    logger = logging.getLogger(logger_name) if logger_name else logging.getLogger()
    logger.setLevel(resolved_level)
    trace_filter = next((f for f in logger.filters if isinstance(f, _AudioTraceFilter)), None)
    if trace_filter is None:
        trace_filter = _AudioTraceFilter()
        logger.addFilter(trace_filter)
    trace_filter.enabled = mode is LogMode.TRACE

    # Avoid duplicating handlers if called multiple times
    if logger.handlers:
        for handler in logger.handlers:
            is_console = isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler)
            handler.setLevel(console_level if is_console else resolved_level)
        return logger

    if json_format:
        fmt = "ts=%(asctime)s level=%(levelname)s logger=%(name)s msg=\"%(message)s\""
    else:
        fmt = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
    formatter = logging.Formatter(fmt=fmt, datefmt="%H:%M:%S")

    log_path = Path(log_file) if log_file else get_default_log_path()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
        )
        file_handler.setLevel(resolved_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError:
        # If file handler fails (e.g., permissions), continue with console only
        pass

    if add_console:
        console = logging.StreamHandler()
        console.setLevel(console_level)
        console.setFormatter(formatter)
        logger.addHandler(console)

    return logger


class BurstSampler:
    """Counts repeated events and reports the total once per interval.

    The audio poll runs many times a second; callers log one summary line
    whenever :meth:`record` returns a count.
    """

    def __init__(self, interval_s: float = 2.0) -> None:
        self.interval_s = max(0.1, float(interval_s))
        self._next_flush = time.monotonic() + self.interval_s
        self._count = 0

    def record(self, amount: int = 1) -> Optional[int]:
        self._count += max(0, amount)
        now = time.monotonic()
        if now < self._next_flush:
            return None
        return self.flush(now)

    def flush(self, now: Optional[float] = None) -> int:
        total = self._count
        self._count = 0
        self._next_flush = (time.monotonic() if now is None else now) + self.interval_s
        return total
