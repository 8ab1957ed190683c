# sigtail/utils.py
from __future__ import annotations
import atexit
import logging
import os
import queue
import secrets
import sys
import tempfile
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Optional, Union


def ensure_dir(p: Path):
    p.mkdir(parents=True, exist_ok=True)

def temp_capture_path(suffix: str = ".pcap", prefix: str = "sigtail_") -> Path:
    """Unique per-run capture artifact under the process temp dir (not created)."""
    return Path(tempfile.gettempdir()) / f"{prefix}{secrets.randbits(32)}{suffix}"

def remove_file(path: Union[str, os.PathLike]) -> bool:
    """Remove path if present. Returns True if something was deleted."""
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False

__all__ = ["setup", "get_logger", "log"]

# ---- internal globals ----
_log_name = "sigtail"
log = logging.getLogger(_log_name)
log.addHandler(logging.NullHandler())
log.setLevel(logging.INFO)
log.propagate = False

_q: Optional[queue.SimpleQueue] = None
_listener: Optional[QueueListener] = None
_configured = False

def setup(
    log_dir: Optional[Union[str, os.PathLike]] = None,
    level: Union[int, str] = "INFO",
    console: bool = True,
    filename: str = "sigtail.log",
    rotate_when: str = "midnight",
    rotate_backup: int = 7,
    encoding: str = "utf-8",
) -> logging.Logger:
    """
    Configure async logging. Call once at program start (e.g., in main).
    - log_dir=None logs to the console only; with a directory, also write a
      file rotated daily, keeping rotate_backup copies.
    - level accepts "DEBUG"/"INFO"/"WARNING"/"ERROR".
    """
    global _q, _listener, _configured

    if _configured:
        return log  # idempotent

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    log.setLevel(level)

    fmt = "[%(asctime)s] %(levelname).1s %(process)d %(threadName)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    handlers = []
    if console:
        h = logging.StreamHandler(sys.stderr)
        h.setFormatter(formatter)
        h.setLevel(level)
        handlers.append(h)

    if log_dir is not None:
        log_path = Path(log_dir)
        ensure_dir(log_path)
        file_handler = TimedRotatingFileHandler(
            filename=str(log_path / filename),
            when=rotate_when,
            backupCount=rotate_backup,
            encoding=encoding,
            utc=False,
            delay=True,
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        handlers.append(file_handler)

    # Queue pipeline: the source-side handler is cheap, I/O runs in the listener thread
    _q = queue.SimpleQueue()
    qh = QueueHandler(_q)
    qh.setLevel(level)

    _clear_handlers(log)
    log.addHandler(qh)

    _listener = QueueListener(_q, *handlers, respect_handler_level=True)
    _listener.start()
    atexit.register(_shutdown_listener)

    _configured = True
    return log


def _clear_handlers(logger: logging.Logger) -> None:
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()


def _shutdown_listener() -> None:
    global _listener
    if _listener:
        _listener.stop()
        _listener = None


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a child logger: get_logger("stream") -> sigtail.stream
    """
    if not name:
        return log
    return logging.getLogger(f"{_log_name}.{name}")
