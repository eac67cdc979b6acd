"""Bounded execution of blocking host commands.

Uploads are written and the classifier subprocess is awaited on worker
threads. At most ``max_concurrent`` commands hold a slot at once; a command
that waits longer than ``SLOT_TIMEOUT_SECONDS`` for a slot raises
``TimeoutError``, which the API reports as 503.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from visionbridge.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

SLOT_TIMEOUT_SECONDS: float = 5.0


class CommandPool:
    """Command slots plus the worker threads that run blocking host work."""

    def __init__(self, settings: Settings) -> None:
        self._slots = asyncio.Semaphore(settings.max_concurrent)
        self._workers = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="host-command",
        )
        self._lock = threading.Lock()
        self._waiting = 0
        self._running: Counter[str] = Counter()

    async def run(self, label: str, func: Callable[..., T], *args: object) -> T:
        """Run ``func(*args)`` on a worker thread once a slot is free.

        ``label`` names the command in logs and in ``running_by_command``.
        """
        async with self._slot(label):
            started = time.perf_counter()
            try:
                return await asyncio.get_running_loop().run_in_executor(self._workers, func, *args)
            finally:
                logger.debug("%s finished in %.3fs", label, time.perf_counter() - started)

    @asynccontextmanager
    async def _slot(self, label: str) -> AsyncIterator[None]:
        with self._lock:
            self._waiting += 1
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=SLOT_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("%s found no free slot within %.1fs", label, SLOT_TIMEOUT_SECONDS)
            raise
        finally:
            with self._lock:
                self._waiting -= 1

        with self._lock:
            self._running[label] += 1
        try:
            yield
        finally:
            self._slots.release()
            with self._lock:
                self._running[label] -= 1
                if not self._running[label]:
                    del self._running[label]

    @property
    def active_count(self) -> int:
        with self._lock:
            return sum(self._running.values())

    @property
    def queue_depth(self) -> int:
        with self._lock:
            return self._waiting

    @property
    def running_by_command(self) -> dict[str, int]:
        with self._lock:
            return dict(self._running)

    def shutdown(self) -> None:
        self._workers.shutdown(wait=True)
