"""Keyed Lock — per-key serialization and release of idle keys.

Tests cover:
    - Same key runs one holder at a time, other keys proceed
    - The entry stays while a waiter is queued and goes once the last one leaves
    - An exception inside the block still releases the entry
"""

import asyncio

import pytest

from fountain.services.keyed_lock import KeyedLock


async def test_same_key_serialized_other_keys_free():
    locks = KeyedLock()
    order = []
    release = asyncio.Event()

    async def slow(key: str, label: str):
        async with locks.hold(key):
            order.append(f"{label}:in")
            await release.wait()
            order.append(f"{label}:out")

    async def fast(key: str, label: str):
        async with locks.hold(key):
            order.append(label)

    first = asyncio.create_task(slow("a", "first"))
    await asyncio.sleep(0)
    second = asyncio.create_task(fast("a", "second"))
    other = asyncio.create_task(fast("b", "other"))
    await other
    assert order == ["first:in", "other"]
    assert len(locks) == 1

    release.set()
    await asyncio.gather(first, second)
    assert order == ["first:in", "other", "first:out", "second"]
    assert len(locks) == 0


async def test_entry_dropped_after_exception():
    locks = KeyedLock()
    with pytest.raises(RuntimeError):
        async with locks.hold("n-1"):
            raise RuntimeError("boom")
    assert len(locks) == 0
