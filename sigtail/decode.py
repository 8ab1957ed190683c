# sigtail/decode.py
from __future__ import annotations

from .core import DecodedFrame, Frame

PLACEHOLDER = "."

_PRINTABLE_LO = 32
_PRINTABLE_HI = 126
_HEX = frozenset("0123456789abcdefABCDEF")


def decode_printable(hex_digits: str, placeholder: str = PLACEHOLDER) -> str:
    """
    Render a hex digit string as printable ASCII.

    Bytes in [32, 126] become their character, anything else (including a
    pair that is not valid hex) becomes ``placeholder``. A trailing odd
    nibble is dropped. Never raises.
    """
    out = []
    for i in range(0, len(hex_digits) - 1, 2):
        pair = hex_digits[i:i + 2]
        # int() would accept "+f" or " f"; only two real hex digits count
        if pair[0] not in _HEX or pair[1] not in _HEX:
            out.append(placeholder)
            continue
        b = int(pair, 16)
        out.append(chr(b) if _PRINTABLE_LO <= b <= _PRINTABLE_HI else placeholder)
    return "".join(out)


def decode_frame(frame: Frame, placeholder: str = PLACEHOLDER) -> DecodedFrame:
    digits = frame.hex.lower()
    return DecodedFrame(
        seq=frame.seq,
        hex=digits,
        text=decode_printable(digits, placeholder),
        lines=frame.lines,
        summary=frame.summary,
        raw=frame.raw,
        ts=frame.ts,
    )
