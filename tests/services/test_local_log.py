"""Local Consensus Log — tests for ordering, redelivery and subscription bounds."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from fountain.infrastructure.local_log import InMemoryConsensusLog, LocalLogError


async def _collect(log: InMemoryConsensusLog, from_time=None) -> list[int]:
    return [entry.position async for entry in log.subscribe(from_time)]


async def test_positions_are_sequential():
    log = InMemoryConsensusLog()
    positions = [await log.append(f"m{i}".encode()) for i in range(3)]
    assert positions == [1, 2, 3]


async def test_subscribers_see_deliveries_in_order():
    log = InMemoryConsensusLog()
    await log.append(b"a")
    await log.append(b"b")
    await log.redeliver(1)
    await log.close()

    assert await _collect(log) == [1, 2, 1]


async def test_from_time_skips_older_entries():
    log = InMemoryConsensusLog()
    await log.append(b"old")
    await asyncio.sleep(0.01)
    since = datetime.now(timezone.utc)
    await log.append(b"new")
    await log.close()

    assert await _collect(log, since) == [2]
    assert await _collect(log, since + timedelta(hours=1)) == []


async def test_failed_append_assigns_no_position():
    log = InMemoryConsensusLog()
    log.fail_next_append()
    with pytest.raises(LocalLogError):
        await log.append(b"lost")
    assert await log.append(b"kept") == 1
