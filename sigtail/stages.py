# sigtail/stages.py
from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple

import dpkt

from .core import Frame, Stage
from .formats import FrameFormat, HexDumpFormat
from .stream import PcapRecord
from .utils import get_logger

log = get_logger("stages")

LINKTYPE_ETHERNET = 1
LINKTYPE_RAW = 101
LINKTYPE_LINUX_SLL = 113

_PROTO_NAMES = {
    dpkt.ip.IP_PROTO_TCP: "tcp",
    dpkt.ip.IP_PROTO_UDP: "udp",
    dpkt.ip.IP_PROTO_ICMP: "icmp",
    dpkt.ip.IP_PROTO_ICMP6: "icmp",
}


def _l3_from_link(buf: bytes, linktype: int):
    if linktype == LINKTYPE_ETHERNET:
        payload = dpkt.ethernet.Ethernet(buf).data
        if isinstance(payload, dpkt.ethernet.VLANtag8021Q):
            payload = payload.data
        return payload
    if linktype == LINKTYPE_LINUX_SLL:
        return dpkt.sll.SLL(buf).data
    if linktype == LINKTYPE_RAW and buf:
        version = buf[0] >> 4
        if version == 4:
            return dpkt.ip.IP(buf)
        if version == 6:
            return dpkt.ip6.IP6(buf)
    return None


def parse_l3_addrs(buf: bytes, linktype: int = LINKTYPE_ETHERNET) -> Tuple[Optional[str], Optional[str], str]:
    """
    Best-effort parse link layer -> IPv4/IPv6 addrs and transport name.
    """
    try:
        payload = _l3_from_link(buf, linktype)

        if isinstance(payload, dpkt.ip.IP):
            src = str(ipaddress.IPv4Address(payload.src))
            dst = str(ipaddress.IPv4Address(payload.dst))
            return src, dst, _PROTO_NAMES.get(payload.p, "ipv4")

        if isinstance(payload, dpkt.ip6.IP6):
            src = str(ipaddress.IPv6Address(payload.src))
            dst = str(ipaddress.IPv6Address(payload.dst))
            return src, dst, _PROTO_NAMES.get(payload.nxt, "ipv6")

        return None, None, "none"
    except Exception:
        return None, None, "none"


class _Sequencer:
    """Hands out 1-based, gapless frame numbers."""

    def __init__(self, start: int = 1):
        self._next = start

    def take(self) -> int:
        seq = self._next
        self._next += 1
        return seq

    @property
    def issued(self) -> int:
        return self._next - 1


@dataclass
class FrameReassembler(Stage):
    """
    Groups producer text lines into frames.

    A blank line or a frame-start marker closes the open frame (if it holds
    anything). Blank lines are never buffered; a marker line opens the next
    frame. Dump lines add their bytes to the frame's hex string, other lines
    are kept for the record only.
    """
    fmt: FrameFormat = field(default_factory=HexDumpFormat)

    # counters
    lines_seen: int = 0
    discarded: int = 0

    _lines: List[str] = field(default_factory=list, repr=False)
    _hex: List[str] = field(default_factory=list, repr=False)
    _seq: _Sequencer = field(default_factory=_Sequencer, repr=False)
    _header_only: bool = field(default=False, repr=False)

    @property
    def buffering(self) -> bool:
        return bool(self._lines)

    @property
    def pending_hex(self) -> str:
        return "".join(self._hex)

    @property
    def frames_closed(self) -> int:
        return self._seq.issued

    def feed(self, line: str) -> Iterable[Frame]:
        self.lines_seen += 1
        out: List[Frame] = []
        if self.fmt.is_boundary(line):
            blank = not line.strip()
            # tshark separates a summary line from its hex dump with a blank
            # line; a buffer holding only that header is not closed by it
            if self._lines and not (blank and self._header_only):
                out.append(self._close())
            if not blank:
                self._lines.append(line)
                self._header_only = True
            return out

        self._lines.append(line)
        self._header_only = False
        digits = self.fmt.extract_hex(line)
        if digits:
            self._hex.append(digits)
        return out

    def flush(self) -> Iterable[Frame]:
        # an unterminated tail may be a half-written packet; never scan it
        if self._lines:
            self.discarded += 1
            log.debug(f"[reassemble] dropping unterminated frame ({len(self._lines)} lines)")
            self._lines = []
            self._hex = []
            self._header_only = False
        return []

    def _close(self) -> Frame:
        frame = Frame(seq=self._seq.take(), hex="".join(self._hex), lines=tuple(self._lines))
        self._lines = []
        self._hex = []
        self._header_only = False
        return frame


@dataclass
class PacketFramer(Stage):
    """
    Structured path: every pcap record already is one whole frame.
    """
    summarize: Callable[[bytes, int], Tuple[Optional[str], Optional[str], str]] = parse_l3_addrs

    _seq: _Sequencer = field(default_factory=_Sequencer, repr=False)

    @property
    def frames_closed(self) -> int:
        return self._seq.issued

    def feed(self, rec: PcapRecord) -> Iterable[Frame]:
        ts, buf = rec.ts, rec.buf
        src, dst, proto = self.summarize(buf, rec.linktype)
        summary = f"{src} -> {dst} {proto} len={len(buf)}" if src else f"len={len(buf)}"
        return [Frame(seq=self._seq.take(), hex=buf.hex(), lines=(summary,),
                      summary=summary, raw=buf, ts=ts)]
