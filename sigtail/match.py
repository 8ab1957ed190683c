# sigtail/match.py
from __future__ import annotations

import functools
import string
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import yaml

from .core import DecodedFrame, MatchedVariant

DEFAULT_SIGNATURE_TEXT = "Sangoon"

_HEXDIGITS = frozenset(string.hexdigits)


def normalize_hex(digits: str) -> str:
    """Lowercase, drop whitespace/separators, validate as whole bytes."""
    s = "".join(str(digits).split()).replace(":", "").lower()
    if s.startswith("0x"):
        s = s[2:]
    if not s:
        raise ValueError("signature variant is empty")
    if any(c not in _HEXDIGITS for c in s):
        raise ValueError(f"signature variant is not hex: {digits!r}")
    if len(s) % 2:
        raise ValueError(f"signature variant has odd length: {digits!r}")
    return s


@dataclass(frozen=True)
class Signature:
    name: str
    variants: Tuple[Tuple[str, str], ...]  # (label, lowercase hex)

    def __post_init__(self):
        if not self.variants:
            raise ValueError(f"signature {self.name!r} has no variants")
        object.__setattr__(
            self, "variants",
            tuple((str(label), normalize_hex(d)) for label, d in self.variants),
        )

    @classmethod
    def from_text(cls, name: str, text: str) -> "Signature":
        """Narrow (UTF-8) and wide (UTF-16LE) encodings of one string."""
        if not text:
            raise ValueError(f"signature {name!r} has empty text")
        return cls(name=name, variants=(
            ("narrow", text.encode("utf-8").hex()),
            ("wide", text.encode("utf-16-le").hex()),
        ))

    @classmethod
    def from_hex(cls, name: str, digits: str) -> "Signature":
        return cls(name=name, variants=(("hex", digits),))


class SignatureScanner:
    """
    Substring test of every signature variant against a frame's hex string.

    Matching stays inside one frame: a pattern split across two frames is
    not reported.
    """
    def __init__(self, signatures: Sequence[Signature]):
        if not signatures:
            raise ValueError("no signatures configured")
        self.signatures = tuple(signatures)

    def scan(self, frame: DecodedFrame) -> Set[MatchedVariant]:
        hits: Set[MatchedVariant] = set()
        digits = frame.hex.lower()
        if not digits:
            return hits
        for sig in self.signatures:
            for label, pattern in sig.variants:
                if pattern in digits:
                    hits.add(MatchedVariant(signature=sig.name, variant=label, digits=pattern))
        return hits


# ----------------------------
# Signature config (YAML)
# ----------------------------

def _compile_entry(entry: Mapping[str, Any], idx: int) -> Signature:
    """
    Supported entry shapes:
      - {name: foo, text: "Sangoon"}                  # narrow + wide
      - {name: foo, hex: "deadbeef"}                  # one raw variant
      - {name: foo, variants: {a: "41", b: "4100"}}   # explicit labels
      - {name: foo, variants: ["41", "4100"]}         # labels v0, v1, ...
    """
    if not isinstance(entry, Mapping):
        raise ValueError(f"signature #{idx} must be a mapping")
    name = str(entry.get("name") or f"sig{idx}")

    if "text" in entry:
        return Signature.from_text(name, str(entry["text"]))
    if "hex" in entry:
        if not isinstance(entry["hex"], str):
            raise ValueError(f"signature {name!r}: quote hex values in YAML")
        return Signature.from_hex(name, entry["hex"])

    variants = entry.get("variants")
    if isinstance(variants, Mapping):
        return Signature(name=name, variants=tuple((str(k), str(v)) for k, v in variants.items()))
    if isinstance(variants, (list, tuple)):
        return Signature(name=name, variants=tuple((f"v{i}", str(v)) for i, v in enumerate(variants)))
    raise ValueError(f"signature {name!r} needs one of: text, hex, variants")


@functools.lru_cache(maxsize=32)
def _load_signatures_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_signatures(path: str) -> List[Signature]:
    doc = _load_signatures_yaml(path)
    entries = doc.get("signatures", []) if isinstance(doc, Mapping) else doc
    if not isinstance(entries, list):
        raise ValueError(f"{path}: 'signatures' must be a list")
    return [_compile_entry(e, i) for i, e in enumerate(entries)]


def build_signatures(path: Optional[str] = None, texts: Iterable[str] = (),
                     hexes: Iterable[str] = ()) -> List[Signature]:
    """Merge file + ad-hoc signatures; fall back to the default target."""
    sigs: List[Signature] = []
    if path:
        sigs.extend(load_signatures(path))
    sigs.extend(Signature.from_text(t, t) for t in texts)
    sigs.extend(Signature.from_hex(h, h) for h in hexes)
    if not sigs:
        sigs.append(Signature.from_text(DEFAULT_SIGNATURE_TEXT, DEFAULT_SIGNATURE_TEXT))
    return sigs
