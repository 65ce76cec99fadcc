"""Per-key serialization of read-modify-write units.

Every unit is registered in the FIFO queue of each key it touches at the
moment it is submitted, and starts only once it has reached the head of all
of those queues. Registration of a multi-key unit happens in one step, so
queue order is consistent with a single global submission order and two
renames over overlapping keys can never wait on each other in a cycle.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Iterable, List, Set, Tuple, TypeVar

logger = logging.getLogger("userdb.serializer")

T = TypeVar("T")


class _Unit:
    __slots__ = ("keys", "ready")

    def __init__(self, keys: Tuple[str, ...], ready: "asyncio.Future[None]") -> None:
        self.keys = keys
        self.ready = ready


class WriteSerializer:
    """Registry of per-key FIFO queues granting units exclusive key access.

    Units on the same key run one at a time in submission order. Units on
    unrelated keys run concurrently. A failing unit only affects its own
    caller, and a caller that stops waiting does not withdraw its unit.
    Queues exist only while a unit is pending or running on their key.
    """

    def __init__(self) -> None:
        self._queues: Dict[str, Deque[_Unit]] = {}
        self._lock = threading.Lock()
        self._tasks: Set["asyncio.Task[object]"] = set()

    async def run(self, key: str, work: Callable[[], Awaitable[T]]) -> T:
        """Run ``work`` with exclusive access to ``key``."""

        return await self._submit((key,), work)

    async def run_rename(self, old_key: str, new_key: str, work: Callable[[], Awaitable[T]]) -> T:
        """Run ``work`` with exclusive access to both ``old_key`` and ``new_key``."""

        return await self._submit((old_key, new_key), work)

    def pending_keys(self) -> List[str]:
        """Return the keys that currently have a queue."""

        with self._lock:
            return sorted(self._queues)

    async def wait_idle(self) -> None:
        """Wait until every submitted unit has finished."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _submit(self, keys: Iterable[str], work: Callable[[], Awaitable[T]]) -> T:
        loop = asyncio.get_running_loop()
        unit = _Unit(tuple(sorted(set(keys))), loop.create_future())
        self._register(unit)

        task = loop.create_task(self._execute(unit, work))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return await asyncio.shield(task)

    async def _execute(self, unit: _Unit, work: Callable[[], Awaitable[T]]) -> T:
        try:
            await unit.ready
            return await work()
        finally:
            self._release(unit)

    def _register(self, unit: _Unit) -> None:
        with self._lock:
            ahead = 0
            for key in unit.keys:
                queue = self._queues.get(key)
                if queue is None:
                    queue = self._queues[key] = deque()
                ahead = max(ahead, len(queue))
                queue.append(unit)
            if self._at_front(unit):
                unit.ready.set_result(None)
        logger.debug("Queued unit for %s behind %d other unit(s)", ", ".join(unit.keys), ahead)

    def _release(self, unit: _Unit) -> None:
        woken: List[_Unit] = []
        with self._lock:
            for key in unit.keys:
                queue = self._queues.get(key)
                if queue is None:
                    continue
                if queue and queue[0] is unit:
                    queue.popleft()
                else:
                    # Only reachable when the task was torn down before it ran.
                    queue.remove(unit)
                if not queue:
                    del self._queues[key]
                    continue
                head = queue[0]
                if not head.ready.done() and head not in woken and self._at_front(head):
                    woken.append(head)
            for candidate in woken:
                candidate.ready.set_result(None)

    def _at_front(self, unit: _Unit) -> bool:
        return all(self._queues[key][0] is unit for key in unit.keys)


__all__ = ["WriteSerializer"]
