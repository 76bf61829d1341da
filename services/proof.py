# services/proof.py
"""
Short and long proof text.

The short proof is one self-certifying line: its checksum covers the
commitment fields and the results, so it can be checked without the
original commitment. The long proof is the full transcript an auditor needs
to re-run the draws; it ends with the short proof line so pasting it whole
into a verifier also works. Verification re-checks the commitment
bounds and the result count before the checksum.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Sequence

from errors import ConfigError, VerificationError
from rng.canonical import canonical_proof, checksum, split_fields
from services.commit import Commitment, verify_commitment
from services.sample import DrawResult

logger = logging.getLogger(__name__)

PROOF_TAG = "BBRNG v1"
REQUIRED = ("p", "t", "s", "k", "r", "n", "x", "crc")

_LINE_RE = re.compile(r"BBRNG v1\|[^\r\n]+")
_INT = re.compile(r"^-?\d+$")
_RANGE_RE = re.compile(r"^(-?\d+)-(-?\d+)$")
_CRC_RE = re.compile(r"^[0-9A-Fa-f]{4}$")


@dataclass(frozen=True)
class ShortProof:
    provider: str
    tip: int
    start: int
    blocks: int
    lo: int
    hi: int
    draws: int
    nums: List[int] = field(default_factory=list)
    crc: str = ""

    @property
    def canonical(self) -> str:
        return canonical_proof(self.provider, self.tip, self.start, self.blocks,
                               self.lo, self.hi, self.draws, self.nums)


def short_proof(c: Commitment, results: Sequence[int]) -> str:
    nums = [int(x) for x in results]
    crc = checksum(canonical_proof(c.provider, c.tip, c.start, c.blocks, c.lo, c.hi, c.draws, nums))
    return (f"{PROOF_TAG}|p={c.provider}|t={c.tip}|s={c.start}|k={c.blocks}"
            f"|r={c.lo}-{c.hi}|n={c.draws}|x=[{','.join(str(x) for x in nums)}]|crc={crc}")


def long_proof(c: Commitment, block_hashes: Sequence[str], draws: Sequence[DrawResult]) -> str:
    nums = [d.value for d in draws]
    short = short_proof(c, nums)
    lines = [
        PROOF_TAG,
        f"prov={c.provider} t={c.tip} start={c.start} k={c.blocks} range=[{c.lo},{c.hi}] n={c.draws}",
        f"commit={c.text}",
        f"H@{c.start}..{c.end_height}=",
    ]
    for offset, h in enumerate(block_hashes):
        lines.append(f"  #{c.start + offset} {h}")
        if c.blocks >= 2:
            lines.append(f"    dec={int(h, 16)}")
    lines.append(f"N={c.range_size} (max-min+1); accept X < 2^256 - (2^256 mod N)")
    lines.append("X = SHA-256(H1 || ... || HK || draw:i); on rejection X = SHA-256(X || draw:i)")
    for d in draws:
        lines.append(f"draw {d.index}: result={d.value} iterations={d.iterations}")
        lines.append(f"  X={d.accepted}")
        lines.append(f"  result = min + (X mod N) = {c.lo} + (X mod {c.range_size}) = {d.value}")
    lines.append(f"nums=[{','.join(str(x) for x in nums)}]")
    lines.append(short)
    lines.append(f"crc={short.rsplit('crc=', 1)[1]}")
    return "\n".join(lines)


def with_ref(proof: str, ref: str | None) -> str:
    """Attach a reference (e.g. the URL of the published note)."""
    ref = (ref or "").strip()
    if not ref:
        return proof
    if "\n" in proof:
        return f"{proof}\nref={ref}"
    return f"{proof}|ref={ref}"


def extract_line(text: str) -> str:
    s = (text or "").strip().strip('"').strip()
    m = _LINE_RE.search(s)
    if not m:
        raise VerificationError("no BBRNG v1 line found")
    return m.group(0).strip().strip('"').strip()


def parse_short_proof(text: str) -> ShortProof:
    line = extract_line(text)
    parts = split_fields(line.split("|")[1:])
    missing = [k for k in REQUIRED if not parts.get(k)]
    if missing:
        raise VerificationError(f"missing fields: {','.join(missing)}")

    rg = _RANGE_RE.match(parts["r"])
    if not rg:
        raise VerificationError(f"bad range {parts['r']!r}")
    ints = [parts[k] for k in ("t", "s", "k", "n")]
    if not all(_INT.match(v) for v in ints):
        raise VerificationError("non-integer field")

    x = parts["x"]
    if not (x.startswith("[") and x.endswith("]")):
        raise VerificationError("results must be bracketed")
    raw_nums = [v.strip() for v in x[1:-1].split(",") if v.strip()]
    if not all(_INT.match(v) for v in raw_nums):
        raise VerificationError("non-integer result")

    if not _CRC_RE.match(parts["crc"]):
        raise VerificationError("checksum must be 4 hex digits")

    t, s, k, n = (int(v) for v in ints)
    proof = ShortProof(provider=parts["p"], tip=t, start=s, blocks=k,
                       lo=int(rg.group(1)), hi=int(rg.group(2)), draws=n,
                       nums=[int(v) for v in raw_nums], crc=parts["crc"].upper())
    _check_bounds(proof)
    if checksum(proof.canonical) != proof.crc:
        raise VerificationError("checksum mismatch")
    return proof


def _check_bounds(proof: ShortProof) -> None:
    # same parameter bounds a commitment must satisfy
    try:
        Commitment(provider=proof.provider, tip=proof.tip, start=proof.start, blocks=proof.blocks,
                   lo=proof.lo, hi=proof.hi, draws=proof.draws)
    except ConfigError as e:
        raise VerificationError(str(e)) from e
    if len(proof.nums) != proof.draws:
        raise VerificationError(f"{len(proof.nums)} results for n={proof.draws}")
    if any(not proof.lo <= x <= proof.hi for x in proof.nums):
        raise VerificationError("result outside range")


def verify_short_proof(text: str) -> bool:
    try:
        parse_short_proof(text)
    except VerificationError as e:
        logger.debug("proof rejected: %s", e)
        return False
    return True


def verify(text: str) -> bool:
    """Check a pasted short proof, long proof or commitment."""
    if _LINE_RE.search(text or ""):
        return verify_short_proof(text)
    return verify_commitment(text)
