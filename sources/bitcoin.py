# sources/bitcoin.py
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from errors import ProviderError

logger = logging.getLogger(__name__)

MEMPOOL = "mp"
BLOCKSTREAM = "bs"
PROVIDER_NAMES = {MEMPOOL: "mempool", BLOCKSTREAM: "blockstream"}


@dataclass(frozen=True)
class BlockMeta:
    hash: str
    timestamp: int


class BlockSource(Protocol):
    code: str

    async def tip_height(self) -> int: ...

    async def hash_by_height(self, height: int) -> str: ...

    async def block_meta(self, block_hash: str) -> BlockMeta: ...


class HttpBlockSource:
    """Esplora-style REST explorer (mempool.space, blockstream.info)."""

    def __init__(self, code: str, base_url: str, timeout: float = 20.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.code = code
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def __repr__(self) -> str:
        return f"HttpBlockSource({self.code!r}, {self.base_url!r})"

    async def _get(self, path: str) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport,
                                         headers={"Cache-Control": "no-store"}) as cli:
                r = await cli.get(url)
                r.raise_for_status()
                return r
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"{url}: HTTP {e.response.status_code}", self.code) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{url}: {e.__class__.__name__}: {e}", self.code) from e

    async def tip_height(self) -> int:
        r = await self._get("/blocks/tip/height")
        try:
            return int(r.text.strip())
        except ValueError as e:
            raise ProviderError(f"tip height is not an integer: {r.text[:40]!r}", self.code) from e

    async def hash_by_height(self, height: int) -> str:
        r = await self._get(f"/block-height/{int(height)}")
        return r.text.strip()

    async def block_meta(self, block_hash: str) -> BlockMeta:
        r = await self._get(f"/block/{block_hash}")
        try:
            j: Dict[str, Any] = r.json()
            return BlockMeta(hash=block_hash, timestamp=int(j["timestamp"]))
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError(f"block {block_hash}: no timestamp in response", self.code) from e


class FailoverSource:
    """
    Tries the preferred explorer and, on ProviderError, the fallback once.
    A second failure propagates. Reports the preferred explorer's code.
    """

    def __init__(self, preferred: BlockSource, fallback: Optional[BlockSource] = None):
        self.preferred = preferred
        self.fallback = fallback
        self.code = preferred.code

    async def _call(self, name: str, *args):
        try:
            return await getattr(self.preferred, name)(*args)
        except ProviderError as e:
            if self.fallback is None:
                raise
            logger.info("%s via %s failed (%s), retrying on %s", name, self.preferred.code, e, self.fallback.code)
            return await getattr(self.fallback, name)(*args)

    async def tip_height(self) -> int:
        return await self._call("tip_height")

    async def hash_by_height(self, height: int) -> str:
        return await self._call("hash_by_height", height)

    async def block_meta(self, block_hash: str) -> BlockMeta:
        return await self._call("block_meta", block_hash)


def build_sources(cfg, transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict[str, BlockSource]:
    return {
        MEMPOOL: HttpBlockSource(MEMPOOL, cfg.MEMPOOL_API_BASE, cfg.HTTP_TIMEOUT, transport),
        BLOCKSTREAM: HttpBlockSource(BLOCKSTREAM, cfg.BTC_API_BASE, cfg.HTTP_TIMEOUT, transport),
    }


def failover_for(code: str, sources: Dict[str, BlockSource]) -> FailoverSource:
    preferred = sources[code]
    others = [s for c, s in sources.items() if c != code]
    return FailoverSource(preferred, others[0] if others else None)
