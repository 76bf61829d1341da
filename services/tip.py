# services/tip.py
import asyncio
import logging
import time
from typing import Callable, Optional

from errors import ProviderError
from sources.bitcoin import BlockMeta, BlockSource

logger = logging.getLogger(__name__)


class TipMonitor:
    """
    Keeps the chain tip and its timestamp fresh for "since last block" and
    ETA telemetry. Failures leave the previous values in place.
    """

    def __init__(self, source: BlockSource, interval: float = 60.0, block_interval: int = 600,
                 clock: Callable[[], float] = time.time):
        self.source = source
        self.interval = interval
        self.block_interval = block_interval
        self.height: Optional[int] = None
        self.timestamp: Optional[int] = None
        self._clock = clock
        self._active = asyncio.Event()
        self._active.set()

    @property
    def paused(self) -> bool:
        return not self._active.is_set()

    def pause(self) -> None:
        self._active.clear()

    def resume(self) -> None:
        self._active.set()

    def observe(self, height: int, meta: BlockMeta) -> None:
        now = int(self._clock())
        if self.height is not None and height < self.height:
            return
        self.height = int(height)
        # explorers occasionally report timestamps slightly in the future
        self.timestamp = min(int(meta.timestamp), now)

    async def refresh(self) -> bool:
        try:
            tip = await self.source.tip_height()
            block_hash = await self.source.hash_by_height(tip)
            meta = await self.source.block_meta(block_hash.strip())
        except ProviderError as e:
            logger.warning("tip refresh failed, keeping stale values: %s", e)
            return False
        self.observe(tip, meta)
        return True

    def since_last_block(self) -> Optional[int]:
        if self.timestamp is None:
            return None
        return max(0, int(self._clock()) - self.timestamp)

    def eta(self, remaining: int) -> Optional[int]:
        """Seconds until `remaining` more blocks are expected; negative when overdue."""
        since = self.since_last_block()
        if since is None or remaining <= 0:
            return None
        return remaining * self.block_interval - since

    def snapshot(self, remaining: int = 0) -> dict:
        return {
            "height": self.height,
            "timestamp": self.timestamp,
            "sinceLastBlock": self.since_last_block(),
            "eta": self.eta(remaining),
            "remaining": remaining,
            "paused": self.paused,
        }

    async def run(self) -> None:
        while True:
            await self._active.wait()
            await self.refresh()
            await asyncio.sleep(self.interval)
