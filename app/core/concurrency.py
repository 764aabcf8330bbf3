"""
Request Coalescing
Collapses concurrent calls for the same key into one execution

Used for:
- Credential refresh (one upstream refresh per owner + connector)
- Sync start (one dispatch per owner + connector + external ref)
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable

logger = logging.getLogger(__name__)


class SingleFlight:
    """
    Per-key request coalescing map.

    The first caller for a key starts the work as a task; callers arriving
    while it runs await the same task and receive its result (or exception).
    The key is released as soon as the task finishes, so the next call after
    completion starts a fresh execution.

    A cancelled caller does not cancel the shared task (asyncio.shield).
    """

    def __init__(self, name: str = "single-flight"):
        self.name = name
        self._inflight: Dict[Hashable, asyncio.Task] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[Any]]) -> Any:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._release(k, t))
        else:
            logger.debug(f"[{self.name}] joining in-flight call for {key}")
        return await asyncio.shield(task)

    def _release(self, key: Hashable, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
