"""
Deduplicating, rate-limited work queue of object keys.

Guarantees:
- A key waits in the queue at most once, however many times it is added
- A key is handed to at most one worker at a time; adding a key that is
  being processed marks it dirty and it is queued again on done()
- Failed keys are re-added after a per-key exponential backoff

All methods must be called from the event loop thread.
"""

import asyncio
from collections import deque
from typing import Deque, Dict, List, Optional, Set

from fleetsync.controllers.retry import RetryConfig, calculate_backoff
from fleetsync.utils.logging import get_logger

logger = get_logger(__name__)


class WorkQueue:
    """
    Work queue with per-key deduplication and backoff.

    Example:
        >>> queue = WorkQueue("serviceexport")
        >>> queue.add("default/web")
        >>> key = await queue.get()
        >>> queue.done(key)
    """

    def __init__(self, name: str, retry_config: Optional[RetryConfig] = None):
        """
        Initialize work queue.

        Args:
            name: Queue name for logging
            retry_config: Backoff configuration for add_rate_limited()
        """
        self.name = name
        self.retry_config = retry_config or RetryConfig()

        self._queue: Deque[str] = deque()
        self._dirty: Set[str] = set()
        self._processing: Set[str] = set()
        self._failures: Dict[str, int] = {}
        self._waiters: List[asyncio.Future] = []
        self._timers: Set[asyncio.TimerHandle] = set()
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._queue)

    def add(self, key: str) -> None:
        """
        Add a key for processing.

        Args:
            key: Object key
        """
        if self._shutting_down or key in self._dirty:
            return

        self._dirty.add(key)
        if key in self._processing:
            return

        self._queue.append(key)
        self._wakeup_one()

    def add_after(self, key: str, delay_ms: int) -> None:
        """
        Add a key after a delay.

        Args:
            key: Object key
            delay_ms: Delay in milliseconds
        """
        if self._shutting_down:
            return
        if delay_ms <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        handle: Optional[asyncio.TimerHandle] = None

        def fire() -> None:
            self._timers.discard(handle)
            self.add(key)

        handle = loop.call_later(delay_ms / 1000.0, fire)
        self._timers.add(handle)

    def add_rate_limited(self, key: str) -> int:
        """
        Re-add a failed key after its backoff.

        Args:
            key: Object key

        Returns:
            Backoff applied, in milliseconds
        """
        failures = self._failures.get(key, 0)
        backoff_ms = calculate_backoff(self.retry_config, failures)
        self._failures[key] = failures + 1

        logger.debug(
            "Requeueing key with backoff",
            queue=self.name,
            key=key,
            failures=failures + 1,
            backoff_ms=backoff_ms,
        )

        self.add_after(key, backoff_ms)
        return backoff_ms

    def forget(self, key: str) -> None:
        """Reset the failure count of a key."""
        self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        return self._failures.get(key, 0)

    async def get(self) -> Optional[str]:
        """
        Wait for the next key.

        Returns:
            A key the caller now owns until done(), or None once the queue
            is shut down
        """
        while not self._queue:
            if self._shutting_down:
                return None

            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            finally:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)

        key = self._queue.popleft()
        self._processing.add(key)
        self._dirty.discard(key)
        return key

    def done(self, key: str) -> None:
        """
        Mark a key as processed.

        If the key was added again while being processed, it is queued again.

        Args:
            key: Key returned by get()
        """
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._queue.append(key)
            self._wakeup_one()

    def is_processing(self, key: str) -> bool:
        return key in self._processing

    def shut_down(self) -> None:
        """Stop accepting keys, cancel pending delays and release waiting getters."""
        self._shutting_down = True

        for handle in self._timers:
            handle.cancel()
        self._timers.clear()

        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def _wakeup_one(self) -> None:
        while self._waiters:
            waiter = self._waiters.pop(0)
            if not waiter.done():
                waiter.set_result(None)
                return
