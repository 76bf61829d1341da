# rng/mix.py
from typing import Iterable

from cryptography.hazmat.primitives import hashes

HASH_BYTES = 32
TWO256 = 1 << 256


def sha256(data: bytes) -> bytes:
    h = hashes.Hash(hashes.SHA256())
    h.update(data)
    return h.finalize()


def domain_tag(index: int) -> bytes:
    """Per-draw separator so two draws never share a hash chain."""
    return f"draw:{index}".encode("utf-8")


def base_material(block_hashes: Iterable[str]) -> bytes:
    """Raw bytes of the committed hashes, in ascending height order."""
    return b"".join(bytes.fromhex(h) for h in block_hashes)


def u256_be(digest: bytes) -> int:
    if len(digest) != HASH_BYTES:
        raise ValueError("digest must be 32 bytes")
    return int.from_bytes(digest, "big")
