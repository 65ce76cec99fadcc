from __future__ import annotations

import asyncio
from typing import List

import pytest

from userdb.serializer import WriteSerializer

pytestmark = pytest.mark.anyio


async def _submit_in_order(*coroutines):
    """Start each coroutine as a task, letting it register before the next."""

    tasks = []
    for coroutine in coroutines:
        tasks.append(asyncio.ensure_future(coroutine))
        await asyncio.sleep(0)
    return tasks


async def test_units_on_one_key_run_in_submission_order() -> None:
    serializer = WriteSerializer()
    order: List[int] = []

    def unit(index: int, delay: float):
        async def work() -> int:
            await asyncio.sleep(delay)
            order.append(index)
            return index

        return work

    results = await asyncio.gather(
        *(serializer.run("k", unit(index, 0.02 - index * 0.004)) for index in range(5))
    )

    assert order == [0, 1, 2, 3, 4]
    assert results == [0, 1, 2, 3, 4]
    assert serializer.pending_keys() == []


async def test_units_see_previous_writes_on_same_key() -> None:
    serializer = WriteSerializer()
    counter = {"value": 0}

    async def increment() -> None:
        current = counter["value"]
        await asyncio.sleep(0.001)
        counter["value"] = current + 1

    await asyncio.gather(*(serializer.run("counter", increment) for _ in range(25)))

    assert counter["value"] == 25


async def test_units_on_different_keys_run_concurrently() -> None:
    serializer = WriteSerializer()
    started = asyncio.Event()

    async def waits_for_other() -> str:
        await asyncio.wait_for(started.wait(), timeout=1)
        return "a"

    async def signals() -> str:
        started.set()
        return "b"

    results = await asyncio.gather(serializer.run("a", waits_for_other), serializer.run("b", signals))

    assert results == ["a", "b"]


async def test_failure_is_reported_only_to_its_caller() -> None:
    serializer = WriteSerializer()
    ran: List[str] = []

    async def fails() -> None:
        ran.append("fails")
        raise RuntimeError("boom")

    async def succeeds() -> str:
        ran.append("succeeds")
        return "ok"

    results = await asyncio.gather(
        serializer.run("k", fails),
        serializer.run("k", succeeds),
        return_exceptions=True,
    )

    assert isinstance(results[0], RuntimeError)
    assert results[1] == "ok"
    assert ran == ["fails", "succeeds"]
    assert serializer.pending_keys() == []


async def test_rename_holds_both_keys() -> None:
    serializer = WriteSerializer()
    events: List[str] = []
    release = asyncio.Event()

    async def rename() -> None:
        events.append("rename-start")
        await release.wait()
        events.append("rename-end")

    def touch(name: str):
        async def work() -> None:
            events.append(name)

        return work

    tasks = await _submit_in_order(
        serializer.run_rename("old", "new", rename),
        serializer.run("old", touch("old")),
        serializer.run("new", touch("new")),
    )

    await asyncio.sleep(0.01)
    assert events == ["rename-start"]
    assert serializer.pending_keys() == ["new", "old"]

    release.set()
    await asyncio.gather(*tasks)

    assert events[:2] == ["rename-start", "rename-end"]
    assert sorted(events[2:]) == ["new", "old"]
    assert serializer.pending_keys() == []


async def test_rename_waits_for_units_already_queued() -> None:
    serializer = WriteSerializer()
    events: List[str] = []
    release = asyncio.Event()

    async def slow_write() -> None:
        await release.wait()
        events.append("write-new")

    async def rename() -> None:
        events.append("rename")

    tasks = await _submit_in_order(
        serializer.run("new", slow_write),
        serializer.run_rename("old", "new", rename),
    )

    await asyncio.sleep(0.01)
    assert events == []

    release.set()
    await asyncio.gather(*tasks)
    assert events == ["write-new", "rename"]


async def test_opposite_renames_do_not_deadlock() -> None:
    serializer = WriteSerializer()
    events: List[str] = []

    def rename(name: str):
        async def work() -> None:
            await asyncio.sleep(0.005)
            events.append(name)

        return work

    await asyncio.wait_for(
        asyncio.gather(
            serializer.run_rename("a", "b", rename("a->b")),
            serializer.run_rename("b", "a", rename("b->a")),
            serializer.run_rename("b", "c", rename("b->c")),
            serializer.run_rename("c", "a", rename("c->a")),
        ),
        timeout=2,
    )

    assert events == ["a->b", "b->a", "b->c", "c->a"]
    assert serializer.pending_keys() == []


async def test_rename_to_same_key_uses_one_queue() -> None:
    serializer = WriteSerializer()

    async def work() -> str:
        assert serializer.pending_keys() == ["same"]
        return "done"

    assert await serializer.run_rename("same", "same", work) == "done"


async def test_cancelled_caller_does_not_withdraw_unit() -> None:
    serializer = WriteSerializer()
    release = asyncio.Event()
    ran: List[str] = []

    async def blocker() -> None:
        await release.wait()
        ran.append("blocker")

    async def queued() -> None:
        ran.append("queued")

    first, second = await _submit_in_order(
        serializer.run("k", blocker),
        serializer.run("k", queued),
    )

    second.cancel()
    with pytest.raises(asyncio.CancelledError):
        await second

    release.set()
    await first
    await serializer.wait_idle()

    assert ran == ["blocker", "queued"]
    assert serializer.pending_keys() == []


async def test_queues_are_removed_once_drained() -> None:
    serializer = WriteSerializer()

    async def work() -> None:
        await asyncio.sleep(0)

    await asyncio.gather(*(serializer.run(f"key-{index}", work) for index in range(50)))

    assert serializer.pending_keys() == []
