"""Shared fakes: an in-memory explorer and a sleep that never waits."""
from __future__ import annotations

from typing import Callable, Dict, List, Optional

import pytest

from errors import ProviderError
from sources.bitcoin import BlockMeta

GENESIS = "000000000019d6689c085ae165831e934ff763ae46a2a6c172b3f1b60a8ce26f"


def fake_hash(i: int) -> str:
    return f"{i:064x}"


class FakeSource:
    def __init__(self, code: str = "mp", tip: int = 800_000, blocks: Optional[Dict[int, str]] = None,
                 down: bool = False, meta_down: bool = False, timestamp: int = 1_700_000_000):
        self.code = code
        self.tip = tip
        self.blocks: Dict[int, str] = dict(blocks or {})
        self.down = down
        self.meta_down = meta_down
        self.timestamp = timestamp
        self.calls: List[tuple] = []

    def mine(self, height: int, block_hash: str) -> None:
        self.blocks[height] = block_hash
        self.tip = max(self.tip, height)

    async def tip_height(self) -> int:
        self.calls.append(("tip",))
        if self.down:
            raise ProviderError("connection refused", self.code)
        return self.tip

    async def hash_by_height(self, height: int) -> str:
        self.calls.append(("hash", height))
        if self.down or height not in self.blocks:
            raise ProviderError(f"block-height/{height}: HTTP 404", self.code)
        return self.blocks[height] + "\n"

    async def block_meta(self, block_hash: str) -> BlockMeta:
        self.calls.append(("meta", block_hash))
        if self.down or self.meta_down:
            raise ProviderError("block: HTTP 500", self.code)
        return BlockMeta(hash=block_hash, timestamp=self.timestamp)


class FakeSleep:
    """Records requested delays and runs `hook(call_number)` after each one."""

    def __init__(self, hook: Optional[Callable[[int], None]] = None):
        self.delays: List[float] = []
        self.hook = hook

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.hook is not None:
            self.hook(len(self.delays))


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def sources():
    return {"mp": FakeSource("mp"), "bs": FakeSource("bs")}
