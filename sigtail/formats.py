# sigtail/formats.py
"""
Frame boundary and hex-extraction rules for producer text output.

The reassembler only asks two questions of a line: does it start a new
frame, and which payload hex digits does it carry. Keeping both behind
``FrameFormat`` lets another engine's text layout be plugged in without
touching reassembly or scanning.
"""
from __future__ import annotations

import re
from typing import Optional, Protocol, Union

_HEX = frozenset("0123456789abcdefABCDEF")

# tshark -P summary line: "<frame-no> <relative-time> ..."
DEFAULT_FRAME_START = re.compile(r"^\s*\d+\s+\d+\.\d+\s")

# tshark -x dump line: offset column at position 0, then whitespace
_DUMP_PREFIX = re.compile(r"^([0-9a-fA-F]{4,8})\s+")

MAX_BYTES_PER_LINE = 16


class FrameFormat(Protocol):
    def is_boundary(self, line: str) -> bool:
        ...

    def extract_hex(self, line: str) -> str:
        ...


class HexDumpFormat:
    """
    tshark ``-x`` / ``-P`` text layout::

        1 0.000000 10.0.0.1 -> 10.0.0.2 TCP 74 ...
        0000  00 1c 42 00 00 08 00 1c 42 aa bb cc 08 00 45 00   ..B.....B.....E.
        0010  00 3c 1a 2b 40 00 40 06 0c 6e 0a 00 00 01 0a 00   .<.+@.@..n......

    Byte groups are separated by one space; the ASCII column is separated
    from them by two or more, which is where extraction stops.
    """

    def __init__(self, frame_start: Optional[Union[str, "re.Pattern[str]"]] = None):
        if frame_start is None:
            frame_start = DEFAULT_FRAME_START
        elif isinstance(frame_start, str):
            frame_start = re.compile(frame_start)
        self.frame_start = frame_start

    def is_boundary(self, line: str) -> bool:
        return not line.strip() or bool(self.frame_start.match(line))

    def extract_hex(self, line: str) -> str:
        m = _DUMP_PREFIX.match(line)
        if not m:
            return ""
        rest = line[m.end():]
        out = []
        i = 0
        n = len(rest)
        while len(out) < MAX_BYTES_PER_LINE and i + 2 <= n:
            if rest[i] not in _HEX or rest[i + 1] not in _HEX:
                break
            end = i + 2
            if end < n and not rest[end].isspace():
                break
            out.append(rest[i:end].lower())
            # a second whitespace char means the ASCII column follows
            if end + 1 < n and rest[end + 1].isspace():
                break
            i = end + 1
        return "".join(out)

