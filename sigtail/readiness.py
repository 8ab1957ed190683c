# sigtail/readiness.py
from __future__ import annotations

import enum
import os
import threading
import time
from typing import Optional, Union

from .utils import get_logger

log = get_logger("ready")


class Readiness(enum.Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


def await_ready(
    path: Union[str, os.PathLike],
    timeout: float = 10.0,
    poll_interval: float = 0.1,
    stop: Optional[threading.Event] = None,
) -> Readiness:
    """
    Wait until the producer has written something (file exists, size > 0).

    Read-only; never blocks past ``timeout``. TIMED_OUT is a start-up
    failure for the caller, not a reason to retry.
    """
    deadline = time.monotonic() + timeout
    polls = 0
    while True:
        if stop is not None and stop.is_set():
            return Readiness.CANCELLED
        try:
            if os.path.getsize(path) > 0:
                log.debug(f"[ready] {path} ready after {polls} polls")
                return Readiness.READY
        except OSError:
            pass  # not created yet
        if time.monotonic() >= deadline:
            log.debug(f"[ready] {path} still empty after {timeout}s")
            return Readiness.TIMED_OUT
        polls += 1
        time.sleep(poll_interval)
