import pytest

from conftest import FakeSource, fake_hash
from services.tip import TipMonitor
from sources.bitcoin import BlockMeta

NOW = 1_700_000_600


def monitor(src=None, now=NOW):
    return TipMonitor(src or FakeSource(), interval=60, block_interval=600, clock=lambda: now)


@pytest.mark.asyncio
async def test_refresh_reads_tip_and_timestamp():
    src = FakeSource(tip=800_000, blocks={800_000: fake_hash(1)}, timestamp=1_700_000_000)
    m = monitor(src)
    assert await m.refresh() is True
    assert m.height == 800_000
    assert m.since_last_block() == 600
    assert ("meta", fake_hash(1)) in src.calls


@pytest.mark.asyncio
async def test_failed_refresh_keeps_stale_values():
    src = FakeSource(tip=800_000, blocks={800_000: fake_hash(1)}, timestamp=1_700_000_000)
    m = monitor(src)
    await m.refresh()
    src.down = True
    src.tip = 800_001
    assert await m.refresh() is False
    assert m.height == 800_000
    assert m.timestamp == 1_700_000_000


def test_future_timestamps_are_clamped():
    m = monitor()
    m.observe(5, BlockMeta(hash=fake_hash(5), timestamp=NOW + 90))
    assert m.timestamp == NOW
    assert m.since_last_block() == 0


def test_older_blocks_do_not_rewind_the_tip():
    m = monitor()
    m.observe(10, BlockMeta(hash=fake_hash(10), timestamp=NOW - 100))
    m.observe(9, BlockMeta(hash=fake_hash(9), timestamp=NOW - 700))
    assert (m.height, m.timestamp) == (10, NOW - 100)


def test_eta_and_overdue():
    m = monitor()
    assert m.eta(1) is None
    m.observe(10, BlockMeta(hash=fake_hash(10), timestamp=NOW - 100))
    assert m.eta(0) is None
    assert m.eta(1) == 500
    assert m.eta(3) == 1700
    m.observe(11, BlockMeta(hash=fake_hash(11), timestamp=NOW - 900))
    assert m.eta(1) == -300


def test_pause_and_resume():
    m = monitor()
    assert not m.paused
    m.pause()
    assert m.paused
    assert m.snapshot()["paused"] is True
    m.resume()
    assert not m.paused
