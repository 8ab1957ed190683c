# sigtail/core.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple


@dataclass(frozen=True)
class Frame:
    seq: int                 # 1-based, gapless per run
    hex: str                 # lowercase hex digits of the payload dump
    lines: Tuple[str, ...] = ()
    summary: Optional[str] = None
    raw: Optional[bytes] = None   # structured path only
    ts: Optional[float] = None


@dataclass(frozen=True)
class DecodedFrame:
    seq: int
    hex: str
    text: str
    lines: Tuple[str, ...] = ()
    summary: Optional[str] = None
    raw: Optional[bytes] = None
    ts: Optional[float] = None


@dataclass(frozen=True)
class MatchedVariant:
    signature: str
    variant: str
    digits: str


@dataclass(frozen=True)
class MatchRecord:
    seq: int
    hit: MatchedVariant
    frame: DecodedFrame


class Stage:
    """
    Streaming stage. feed() yields 0..N closed frames.
    flush() yields buffered tail frames when input ends.
    """
    def feed(self, item) -> Iterable[Frame]:
        return []

    def flush(self) -> Iterable[Frame]:
        return []


@dataclass
class RunSummary:
    frames: int = 0
    matches: int = 0
    discarded: int = 0
    reason: str = ""


class StartupError(RuntimeError):
    """Producer could not be started or never became ready. Fatal, no retry."""
