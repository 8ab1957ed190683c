# sigtail/stream.py
"""
Readers for a capture file that another process is still appending to.

``read_next()`` returns one item, ``PENDING`` (nothing complete yet, producer
alive: back off and retry) or ``TERMINATED`` (producer gone and everything
it wrote has been drained). Liveness is asked of the producer itself, never
inferred from EOF: a live producer hits EOF between every two writes.
"""
from __future__ import annotations

import enum
import os
import struct
from dataclasses import dataclass
from typing import BinaryIO, Callable, Optional, Union

from .utils import get_logger

log = get_logger("stream")


class ReadStatus(enum.Enum):
    PENDING = "pending"
    TERMINATED = "terminated"


PENDING = ReadStatus.PENDING
TERMINATED = ReadStatus.TERMINATED


class _TailReader:
    def __init__(self, path: Union[str, os.PathLike], is_alive: Callable[[], bool]):
        self.path = os.fspath(path)
        self.offset = 0
        self._is_alive = is_alive
        self._fh: Optional[BinaryIO] = None
        self._done = False

    @property
    def terminated(self) -> bool:
        return self._done

    def open(self):
        self._fh = open(self.path, "rb")
        return self

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            finally:
                self._fh = None

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()

    def _read_at(self, pos: int, n: int = -1) -> bytes:
        if self._fh is None:
            raise RuntimeError("reader not opened")
        self._fh.seek(pos)
        return self._fh.read(n)


class GrowingLineReader(_TailReader):
    """Text lines (tshark -x output). Lines are returned without the newline."""

    def __init__(self, path, is_alive, encoding: str = "utf-8"):
        super().__init__(path, is_alive)
        self.encoding = encoding

    def _decode(self, raw: bytes) -> str:
        return raw.decode(self.encoding, errors="replace").rstrip("\r\n")

    def read_next(self) -> Union[str, ReadStatus]:
        if self._done:
            return TERMINATED
        # ask before reading so bytes written right before exit still drain
        alive = self._is_alive()
        if self._fh is None:
            raise RuntimeError("reader not opened")
        self._fh.seek(self.offset)
        raw = self._fh.readline()
        if raw.endswith(b"\n"):
            self.offset += len(raw)
            return self._decode(raw)
        if alive:
            return PENDING  # partial line stays unconsumed
        if raw:
            self.offset += len(raw)
            return self._decode(raw)
        self._done = True
        return TERMINATED


# ----------------------------
# Classic pcap, read incrementally
# ----------------------------

_GLOBAL_HDR_LEN = 24
_RECORD_HDR_LEN = 16
_MAX_RECORD = 262144

# magic bytes as stored on disk -> (record header format, byte order, ts divisor)
_PCAP_MAGIC = {
    b"\xd4\xc3\xb2\xa1": ("<IIII", "little", 1_000_000),
    b"\xa1\xb2\xc3\xd4": (">IIII", "big", 1_000_000),
    b"\x4d\x3c\xb2\xa1": ("<IIII", "little", 1_000_000_000),
    b"\xa1\xb2\x3c\x4d": (">IIII", "big", 1_000_000_000),
}
_PCAPNG_MAGIC = b"\x0a\x0d\x0d\x0a"


@dataclass(frozen=True)
class PcapRecord:
    ts: float
    buf: bytes
    linktype: int


class PcapRecordReader(_TailReader):
    """
    Classic pcap records from a file tshark is writing with ``-F pcap -w``.

    A record whose header or body is not fully on disk yet is left in place
    and reported as PENDING; the next call starts from the same offset.
    """

    def __init__(self, path, is_alive):
        super().__init__(path, is_alive)
        self.linktype: Optional[int] = None
        self.snaplen = _MAX_RECORD
        self._fmt_hdr = "<IIII"
        self._ts_div = 1_000_000

    def open(self):
        super().open()
        try:
            self._parse_global_header()
        except ValueError:
            self.close()
            raise
        return self

    def _parse_global_header(self) -> bool:
        if self.linktype is not None:
            return True
        gh = self._read_at(0, _GLOBAL_HDR_LEN)
        if len(gh) < 4:
            return False
        magic = gh[0:4]
        if magic == _PCAPNG_MAGIC:
            raise ValueError(f"{self.path} is pcapng; the producer must write classic pcap (-F pcap)")
        if magic not in _PCAP_MAGIC:
            raise ValueError(f"Unknown capture format (not pcap): {self.path}")
        if len(gh) < _GLOBAL_HDR_LEN:
            return False
        self._fmt_hdr, byte_order, self._ts_div = _PCAP_MAGIC[magic]
        snaplen = int.from_bytes(gh[16:20], byte_order)
        if 0 < snaplen <= _MAX_RECORD:
            self.snaplen = snaplen
        self.linktype = int.from_bytes(gh[20:24], byte_order)
        self.offset = _GLOBAL_HDR_LEN
        log.info(f"[attach] pcap linktype {self.linktype} snaplen {self.snaplen} for {self.path}")
        return True

    def _try_record(self) -> Optional[PcapRecord]:
        if not self._parse_global_header():
            return None
        hdr = self._read_at(self.offset, _RECORD_HDR_LEN)
        if len(hdr) < _RECORD_HDR_LEN:
            return None
        ts_sec, ts_frac, incl_len, _orig_len = struct.unpack(self._fmt_hdr, hdr)
        if incl_len > max(self.snaplen, _MAX_RECORD):
            raise ValueError(f"Invalid incl_len {incl_len} at {self.offset} in {self.path}")
        body = self._read_at(self.offset + _RECORD_HDR_LEN, incl_len)
        if len(body) < incl_len:
            return None
        self.offset += _RECORD_HDR_LEN + incl_len
        return PcapRecord(ts=ts_sec + ts_frac / self._ts_div, buf=body, linktype=self.linktype)

    def read_next(self) -> Union[PcapRecord, ReadStatus]:
        if self._done:
            return TERMINATED
        alive = self._is_alive()
        try:
            rec = self._try_record()
        except ValueError as e:
            # a bad length cannot be resynchronised in a live file
            log.error(f"[stream] {e}; giving up on this capture")
            self._done = True
            return TERMINATED
        if rec is not None:
            return rec
        if alive:
            return PENDING
        leftover = os.fstat(self._fh.fileno()).st_size - self.offset
        if leftover > 0:
            log.warning(f"[stream] dropping {leftover} trailing bytes of a truncated record in {self.path}")
        self._done = True
        return TERMINATED
