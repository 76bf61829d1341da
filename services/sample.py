# services/sample.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from errors import BlockSetIncomplete, ConfigError, SeedOverflowError
from rng.mix import TWO256, base_material, domain_tag, sha256, u256_be
from services.blocks import BlockSet, normalize_hash

MAX_ITERATIONS = 1000


@dataclass(frozen=True)
class DrawResult:
    index: int
    accepted: int      # X, the 256-bit integer that passed the threshold
    value: int         # min + (X mod N)
    iterations: int

    def to_dict(self) -> dict:
        return {
            "index": self.index, "value": self.value, "iterations": self.iterations,
            "xUsed": str(self.accepted), "xHex": f"{self.accepted:064x}",
        }


def threshold(n: int) -> int:
    """Largest multiple of n that fits in 2^256; X at or above it is rejected."""
    if n <= 0:
        raise ValueError("empty range")
    return TWO256 - (TWO256 % n)


def accept(x: int, lo: int, hi: int) -> Optional[int]:
    """
    Unbiased mapping of a uniform 256-bit X into [lo, hi].
    Returns None when X falls in the biased tail and must be re-hashed.
    The whole digest is used; mapping only the first 64 bits gives
    different results and is not compatible with published proofs.
    """
    n = hi - lo + 1
    if x >= threshold(n):
        return None
    return lo + (x % n)


def _draw_from_material(base: bytes, index: int, lo: int, hi: int, max_iterations: int) -> DrawResult:
    if hi < lo:
        raise ConfigError("invalid range: max < min")
    tag = domain_tag(index)
    material = base + tag
    for iteration in range(1, max_iterations + 1):
        digest = sha256(material)
        x = u256_be(digest)
        value = accept(x, lo, hi)
        if value is not None:
            return DrawResult(index=index, accepted=x, value=value, iterations=iteration)
        material = digest + tag
    raise SeedOverflowError(index, max_iterations)


def draw(block_set: BlockSet, index: int, lo: int, hi: int,
         max_iterations: int = MAX_ITERATIONS) -> DrawResult:
    """Deterministic draw `index` over a completed block set."""
    if not block_set.complete:
        raise BlockSetIncomplete(f"missing blocks {block_set.missing}")
    return _draw_from_material(base_material(block_set.hashes), index, lo, hi, max_iterations)


def draw_all(block_set: BlockSet, lo: int, hi: int, count: int,
             max_iterations: int = MAX_ITERATIONS) -> List[DrawResult]:
    return [draw(block_set, i, lo, hi, max_iterations) for i in range(count)]


def recompute(block_hashes: Sequence[str], lo: int, hi: int, count: int,
              max_iterations: int = MAX_ITERATIONS) -> List[DrawResult]:
    """Re-run the draws from published hashes, as an auditor would."""
    hashes = [normalize_hash(h) for h in block_hashes]
    if not hashes or any(h is None for h in hashes):
        raise ConfigError("every block hash must be 64 hex characters")
    base = base_material(hashes)
    return [_draw_from_material(base, i, lo, hi, max_iterations) for i in range(count)]
