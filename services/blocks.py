# services/blocks.py
"""
Committed block window and the waiter that fills it.

The waiter polls heights in ascending order. A failed or empty lookup means
"not mined yet": it backs off and asks again, checking the cancel token every
`cancel_check` seconds so a stop request is seen long before the next poll.
"""
from __future__ import annotations

import asyncio
import logging
import re
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from errors import ProviderError
from sources.bitcoin import BlockMeta, BlockSource

logger = logging.getLogger(__name__)

_HASH_RE = re.compile(r"^[0-9a-f]{64}$")


def normalize_hash(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    h = raw.strip().lower()
    return h if _HASH_RE.match(h) else None


class BlockSet:
    def __init__(self, start_height: int, count: int):
        if count < 1:
            raise ValueError("block set needs at least one slot")
        self.start_height = start_height
        self._slots: List[Optional[str]] = [None] * count

    def __len__(self) -> int:
        return len(self._slots)

    def __getitem__(self, offset: int) -> Optional[str]:
        return self._slots[offset]

    @property
    def end_height(self) -> int:
        return self.start_height + len(self._slots) - 1

    def height_of(self, offset: int) -> int:
        return self.start_height + offset

    def fill(self, offset: int, block_hash: str) -> None:
        if not 0 <= offset < len(self._slots):
            raise IndexError(f"offset {offset} outside block set")
        if any(s is None for s in self._slots[:offset]):
            raise ValueError(f"slot {offset} filled before lower heights")
        h = normalize_hash(block_hash)
        if h is None:
            raise ValueError(f"not a block hash: {block_hash!r}")
        self._slots[offset] = h

    @property
    def filled(self) -> int:
        return sum(1 for s in self._slots if s is not None)

    @property
    def complete(self) -> bool:
        return all(s is not None for s in self._slots)

    @property
    def missing(self) -> List[int]:
        return [self.height_of(i) for i, s in enumerate(self._slots) if s is None]

    @property
    def hashes(self) -> List[Optional[str]]:
        return list(self._slots)


class CancelToken:
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class WaiterState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


OnBlock = Callable[[int, str], Awaitable[None]]
OnMeta = Callable[[int, BlockMeta], None]


class BlockWaiter:
    def __init__(self, source: BlockSource, block_set: BlockSet, *,
                 poll_interval: float = 10.0, cancel_check: float = 0.25,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 on_block: Optional[OnBlock] = None, on_meta: Optional[OnMeta] = None):
        if cancel_check <= 0:
            raise ValueError("cancel_check must be positive")
        self.source = source
        self.block_set = block_set
        self.poll_interval = poll_interval
        self.cancel_check = cancel_check
        self.state = WaiterState.IDLE
        self.polls = 0
        self._sleep = sleep
        self._on_block = on_block
        self._on_meta = on_meta

    async def run(self, token: CancelToken) -> WaiterState:
        if self.state is not WaiterState.IDLE:
            raise RuntimeError(f"waiter already {self.state.value}")
        self.state = WaiterState.WAITING
        bs = self.block_set
        logger.info("waiting for blocks %d..%d via %s", bs.start_height, bs.end_height, self.source.code)

        for offset in range(len(bs)):
            if bs[offset] is not None:
                continue
            height = bs.height_of(offset)
            while True:
                if token.cancelled:
                    return self._cancel()
                block_hash = await self._poll(height)
                # a stop may land while the lookup is in flight
                if token.cancelled:
                    return self._cancel()
                if block_hash is not None:
                    break
                if not await self._backoff(token):
                    return self._cancel()
            bs.fill(offset, block_hash)
            logger.info("block %d: %s", height, block_hash)
            await self._fetch_meta(height, block_hash)
            if self._on_block is not None:
                await self._on_block(height, block_hash)

        if token.cancelled:
            return self._cancel()
        self.state = WaiterState.COMPLETED
        return self.state

    async def _poll(self, height: int) -> Optional[str]:
        self.polls += 1
        try:
            raw = await self.source.hash_by_height(height)
        except ProviderError as e:
            logger.debug("height %d not available yet: %s", height, e)
            return None
        return normalize_hash(raw)

    async def _backoff(self, token: CancelToken) -> bool:
        waited = 0.0
        while waited < self.poll_interval:
            if token.cancelled:
                return False
            step = min(self.cancel_check, self.poll_interval - waited)
            await self._sleep(step)
            waited += step
        return not token.cancelled

    async def _fetch_meta(self, height: int, block_hash: str) -> None:
        if self._on_meta is None:
            return
        try:
            meta = await self.source.block_meta(block_hash)
        except ProviderError as e:
            logger.warning("metadata for block %d unavailable: %s", height, e)
            return
        self._on_meta(height, meta)

    def _cancel(self) -> WaiterState:
        self.state = WaiterState.CANCELLED
        logger.info("wait cancelled with %d/%d blocks", self.block_set.filled, len(self.block_set))
        return self.state
