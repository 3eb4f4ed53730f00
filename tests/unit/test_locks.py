"""Tests for per-key asyncio locks."""

import asyncio

from agentpay.core.locks import KeyedLock


async def test_same_key_is_serialized():
    locks = KeyedLock()
    events: list[str] = []

    async def worker(name: str):
        async with locks.hold("user-1"):
            events.append(f"{name}-start")
            await asyncio.sleep(0.01)
            events.append(f"{name}-end")

    await asyncio.gather(worker("a"), worker("b"))

    assert events in (
        ["a-start", "a-end", "b-start", "b-end"],
        ["b-start", "b-end", "a-start", "a-end"],
    )


async def test_different_keys_run_concurrently():
    locks = KeyedLock()
    inside = asyncio.Event()

    async def holder():
        async with locks.hold("user-1"):
            await inside.wait()

    task = asyncio.create_task(holder())
    await asyncio.sleep(0)

    assert locks.locked("user-1")
    async with locks.hold("user-2"):
        assert locks.locked("user-2")

    inside.set()
    await task
    assert not locks.locked("user-1")
