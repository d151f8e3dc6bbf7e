"""Coalesce concurrent calls for the same key into one execution."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from app.core.errors import SyncInProgress

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    """
    Process-local single-flight guard.

    The first caller for a key starts the work as a task; callers arriving
    while it runs await that same task and share its result or exception.
    Waiters are shielded, so a caller that times out or is cancelled does not
    cancel the shared run.
    """

    def __init__(self) -> None:
        self._inflight: Dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def run(
        self,
        key: str,
        func: Callable[[], Awaitable[T]],
        *,
        timeout: Optional[float] = None,
    ) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(func())
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        else:
            logger.debug("Joining in-flight run for %s", key)

        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError as exc:
            raise SyncInProgress(
                f"Sync for {key} did not finish within {timeout:g}s; it is still running."
            ) from exc

    async def settle(self, key: str, *, timeout: Optional[float] = None) -> bool:
        """Wait for the in-flight run for ``key`` to finish, whatever its outcome."""
        task = self._inflight.get(key)
        if task is None:
            return True
        done, _ = await asyncio.wait({task}, timeout=timeout)
        return bool(done)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception retrieved when every waiter already gave up.
            task.exception()


__all__ = ["SingleFlight"]
