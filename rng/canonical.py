# rng/canonical.py
"""
Canonical field strings and their CRC-32 checksum.

Field order is fixed; the checksum is computed over the exact text returned
here, so any change to the layout invalidates every published commitment.
"""
import binascii
from typing import Iterable, Optional

COMMIT_FIELDS = ("prov", "tip", "start", "k", "min", "max", "n")


def canonical_commitment(prov: str, tip: int, start: int, k: int, lo: int, hi: int, n: int) -> str:
    values = (prov, tip, start, k, lo, hi, n)
    return "|".join(f"{key}={value}" for key, value in zip(COMMIT_FIELDS, values))


def canonical_proof(prov: str, tip: int, start: int, k: int, lo: int, hi: int, n: int,
                    nums: Optional[Iterable[int]] = None) -> str:
    joined = ",".join(str(x) for x in (nums or ()))
    return canonical_commitment(prov, tip, start, k, lo, hi, n) + f"|nums={joined}"


def crc32_text(text: str) -> int:
    # low byte of each character code; canonical strings are ASCII
    data = bytes(ord(ch) & 0xFF for ch in text)
    return binascii.crc32(data) & 0xFFFFFFFF


def checksum(text: str) -> str:
    return f"{crc32_text(text) & 0xFFFF:04X}"


def split_fields(segments: Iterable[str]) -> dict:
    """`key=value` segments to a dict; segments without `=` are skipped."""
    out = {}
    for seg in segments:
        key, sep, value = seg.partition("=")
        if not sep:
            continue
        out[key.strip()] = value.strip()
    return out
