# services/commit.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from errors import ConfigError, VerificationError
from rng.canonical import canonical_commitment, checksum, split_fields
from sources.bitcoin import PROVIDER_NAMES, BlockSource

logger = logging.getLogger(__name__)

DEFAULT_TAG = "BBRNG-commit"
MAX_SPAN = 10 ** 12
MAX_DRAWS = 10
MAX_BLOCKS = 5

_INT = re.compile(r"^-?\d+$")
_COMMIT_RE = re.compile(r"(?P<tag>\S+) (?P<body>prov=[^\s]*?)\|crc=(?P<crc>[0-9A-Fa-f]{4})(?![0-9A-Za-z])")


def validate_params(provider: str, lo: int, hi: int, draws: int, blocks: int) -> None:
    if provider not in PROVIDER_NAMES:
        raise ConfigError(f"unknown provider {provider!r}")
    if hi < lo:
        raise ConfigError("invalid range: max < min")
    if hi - lo > MAX_SPAN:
        raise ConfigError("range too large (max - min must be <= 1e12)")
    if not 1 <= draws <= MAX_DRAWS:
        raise ConfigError(f"draw count must be within 1..{MAX_DRAWS}")
    if not 1 <= blocks <= MAX_BLOCKS:
        raise ConfigError(f"block count must be within 1..{MAX_BLOCKS}")


@dataclass(frozen=True)
class Commitment:
    provider: str
    tip: int
    start: int
    blocks: int
    lo: int
    hi: int
    draws: int
    tag: str = DEFAULT_TAG

    def __post_init__(self):
        validate_params(self.provider, self.lo, self.hi, self.draws, self.blocks)
        if self.start != self.tip + 1:
            raise ConfigError("start height must be tip + 1")

    @property
    def canonical(self) -> str:
        return canonical_commitment(self.provider, self.tip, self.start, self.blocks,
                                    self.lo, self.hi, self.draws)

    @property
    def checksum(self) -> str:
        return checksum(self.canonical)

    @property
    def text(self) -> str:
        return f"{self.tag} {self.canonical}|crc={self.checksum}"

    @property
    def end_height(self) -> int:
        return self.start + self.blocks - 1

    @property
    def range_size(self) -> int:
        return self.hi - self.lo + 1

    def to_dict(self) -> dict:
        return {
            "provider": self.provider, "tip": self.tip, "start": self.start,
            "end": self.end_height, "k": self.blocks, "min": self.lo, "max": self.hi,
            "n": self.draws, "crc": self.checksum, "text": self.text,
        }


async def build_commitment(source: BlockSource, lo: int, hi: int, draws: int, blocks: int,
                           tag: str = DEFAULT_TAG) -> Commitment:
    """
    Fix the block window at the next height after the current tip.
    ProviderError from the tip read propagates; nothing is kept between calls.
    """
    validate_params(source.code, lo, hi, draws, blocks)
    tip = await source.tip_height()
    c = Commitment(provider=source.code, tip=tip, start=tip + 1, blocks=blocks,
                   lo=lo, hi=hi, draws=draws, tag=tag)
    logger.info("commitment at tip %d: blocks %d..%d crc=%s", tip, c.start, c.end_height, c.checksum)
    return c


def parse_commitment(text: str) -> Commitment:
    m = _COMMIT_RE.search(text or "")
    if not m:
        raise VerificationError("no commitment found")
    fields = split_fields(m.group("body").split("|"))
    try:
        raw = [fields[k] for k in ("tip", "start", "k", "min", "max", "n")]
        prov = fields["prov"]
    except KeyError as e:
        raise VerificationError(f"missing field {e.args[0]!r}") from e
    if not all(_INT.match(v) for v in raw):
        raise VerificationError("non-integer field")
    tip, start, k, lo, hi, n = (int(v) for v in raw)
    try:
        c = Commitment(provider=prov, tip=tip, start=start, blocks=k, lo=lo, hi=hi,
                       draws=n, tag=m.group("tag"))
    except ConfigError as e:
        raise VerificationError(str(e)) from e
    if c.checksum != m.group("crc").upper():
        raise VerificationError("checksum mismatch")
    return c


def verify_commitment(text: str) -> bool:
    try:
        parse_commitment(text)
    except VerificationError as e:
        logger.debug("commitment rejected: %s", e)
        return False
    return True
