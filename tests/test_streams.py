import json

import pytest

from streams import StreamHub


@pytest.mark.asyncio
async def test_events_reach_subscribers():
    hub = StreamHub(heartbeat=5)
    gen = hub.subscribe("session")
    first = await gen.__anext__()
    assert json.loads(first[len("data: "):]) == {"type": "connected", "channel": "session"}
    assert hub.subscribers("session") == 1

    await hub.emit("session", {"type": "draw", "value": 5})
    await hub.emit("other", {"type": "draw", "value": 6})
    assert await gen.__anext__() == 'data: {"type": "draw", "value": 5}\n\n'

    await gen.aclose()
    assert hub.subscribers("session") == 0


@pytest.mark.asyncio
async def test_idle_stream_gets_pings():
    hub = StreamHub(heartbeat=0.01)
    gen = hub.subscribe("session")
    await gen.__anext__()
    ping = json.loads((await gen.__anext__())[len("data: "):])
    assert ping["type"] == "ping"
    await gen.aclose()
