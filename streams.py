import asyncio
import json
import logging
from typing import AsyncGenerator, Dict, List

logger = logging.getLogger(__name__)

SESSION_CHANNEL = "session"


def sse(event: dict) -> str:
    return f"data: {json.dumps(event)}\n\n"


class StreamHub:
    """Fan-out of session events to Server-Sent Event subscribers."""

    def __init__(self, heartbeat: float = 2.0):
        self.heartbeat = heartbeat
        self._subs: Dict[str, List[asyncio.Queue]] = {}

    def subscribers(self, channel: str) -> int:
        return len(self._subs.get(channel, []))

    async def subscribe(self, channel: str) -> AsyncGenerator[str, None]:
        q: asyncio.Queue = asyncio.Queue()
        self._subs.setdefault(channel, []).append(q)
        try:
            yield sse({"type": "connected", "channel": channel})
            while True:
                try:
                    event = await asyncio.wait_for(q.get(), timeout=self.heartbeat)
                except asyncio.TimeoutError:
                    # keeps proxies from buffering an idle stream
                    event = {"type": "ping", "t": asyncio.get_running_loop().time()}
                yield sse(event)
        finally:
            subs = self._subs.get(channel) or []
            if q in subs:
                subs.remove(q)
            logger.debug("subscriber left %s (%d remaining)", channel, len(subs))

    async def emit(self, channel: str, event: dict) -> None:
        for q in self._subs.get(channel, []):
            q.put_nowait(event)
