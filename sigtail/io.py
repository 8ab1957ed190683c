# sigtail/io.py
from __future__ import annotations

import os
from pathlib import Path
from typing import IO, Optional, Union

import dpkt

from .core import DecodedFrame, MatchRecord
from .utils import get_logger

log = get_logger("sink")


def format_match(rec: MatchRecord) -> str:
    lines = [f"Match packet #{rec.seq} [{rec.hit.signature}/{rec.hit.variant}]"]
    if rec.frame.summary:
        lines.append(rec.frame.summary)
    lines.append(rec.frame.text)
    return "\n".join(lines) + "\n\n"


def format_frame(frame: DecodedFrame) -> str:
    lines = [f"Packet #{frame.seq}"]
    if frame.summary:
        lines.append(frame.summary)
    lines.append(frame.text)
    return "\n".join(lines) + "\n\n"


class ResultSink:
    """
    Append-only text log. Every record is flushed and fsynced before
    record() returns.

    Failing to open or write the log never stops scanning: the error is
    logged once and the sink disables itself. Durability is best-effort.
    """
    def __init__(self, path: Union[str, os.PathLike], encoding: str = "utf-8"):
        self.path = Path(path)
        self.encoding = encoding
        self.written = 0
        self.failed = False
        self._fh: Optional[IO[str]] = None

    def _open(self) -> bool:
        if self._fh is not None:
            return True
        if self.failed:
            return False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self.path, "a", encoding=self.encoding)
            return True
        except OSError as e:
            self._disable(f"cannot open {self.path}: {e}")
            return False

    def _disable(self, why: str) -> None:
        self.failed = True
        log.warning(f"[sink] {why}; results will not be persisted")
        self.close()

    def _write(self, text: str) -> bool:
        if not self._open():
            return False
        try:
            self._fh.write(text)
            self._fh.flush()
            os.fsync(self._fh.fileno())
        except OSError as e:
            self._disable(f"write to {self.path} failed: {e}")
            return False
        self.written += 1
        return True

    def record(self, rec: MatchRecord) -> bool:
        return self._write(format_match(rec))

    def record_frame(self, frame: DecodedFrame) -> bool:
        return self._write(format_frame(frame))

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                pass
            finally:
                self._fh = None


class PcapMatchSink:
    """Raw bytes of matching structured frames, written as classic pcap via dpkt."""
    def __init__(self, out_path: Union[str, os.PathLike], linktype: int = 1):
        self.out_path = Path(out_path)
        self.linktype = linktype
        self.written = 0
        self.failed = False
        self._f: Optional[IO[bytes]] = None
        self._writer: Optional[dpkt.pcap.Writer] = None

    def _open(self, linktype: int) -> bool:
        if self._writer is not None:
            return True
        if self.failed:
            return False
        try:
            self._f = open(self.out_path, "wb")
            self._writer = dpkt.pcap.Writer(self._f, snaplen=65535, linktype=linktype)
            self.linktype = linktype
            return True
        except OSError as e:
            self.failed = True
            log.warning(f"[sink] cannot open {self.out_path}: {e}; matched packets will not be saved")
            self.close()
            return False

    def writepkt(self, frame: DecodedFrame, linktype: Optional[int] = None) -> bool:
        if frame.raw is None:
            return False
        if not self._open(linktype if linktype is not None else self.linktype):
            return False
        try:
            self._writer.writepkt(frame.raw, ts=frame.ts)
            self._f.flush()
            os.fsync(self._f.fileno())
        except OSError as e:
            self.failed = True
            log.warning(f"[sink] write to {self.out_path} failed: {e}; matched packets will not be saved")
            self.close()
            return False
        self.written += 1
        return True

    def close(self) -> None:
        self._writer = None
        if self._f is not None:
            try:
                self._f.close()
            except OSError:
                pass
            finally:
                self._f = None
