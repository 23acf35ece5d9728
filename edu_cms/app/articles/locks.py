"""Per-slug lock manager with FIFO hand-off.

Each key maps to a transient entry that exists only while the key is held
or waited on. Releasing hands ownership directly to the oldest waiter, so
grant order equals request order. Different keys never block each other.

Releasing twice (or releasing a stale handle) is a no-op that logs a
warning. The manager imposes no timeouts; callers wanting bounded waits
wrap `acquire` in `asyncio.wait_for` or cancel the task.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from edu_cms.app.utils.metrics import metrics

logger = logging.getLogger(__name__)

Release = Callable[[], None]


@dataclass
class _LockEntry:
    """Live lock state for one key."""

    token: int
    waiters: deque[asyncio.Future[int]] = field(default_factory=deque)


class SlugLockManager:
    """Exclusive, FIFO-queued locks keyed by string."""

    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}
        self._next_token = 0

    def __len__(self) -> int:
        return len(self._entries)

    def is_locked(self, key: str) -> bool:
        """Check whether the key is currently held."""
        return key in self._entries

    def waiters(self, key: str) -> int:
        """Number of callers queued behind the current holder."""
        entry = self._entries.get(key)
        return len(entry.waiters) if entry else 0

    async def acquire(self, key: str) -> Release:
        """Wait for exclusive access to `key`.

        Returns:
            A release callable. Calling it more than once is a no-op.
        """
        started = time.perf_counter()
        entry = self._entries.get(key)

        if entry is None:
            token = self._new_token()
            self._entries[key] = _LockEntry(token=token)
        else:
            fut: asyncio.Future[int] = asyncio.get_running_loop().create_future()
            entry.waiters.append(fut)
            try:
                token = await fut
            except asyncio.CancelledError:
                if fut.done() and not fut.cancelled():
                    # Granted while being cancelled: pass ownership on
                    self._release(key, fut.result())
                else:
                    try:
                        entry.waiters.remove(fut)
                    except ValueError:
                        pass
                raise

        metrics.record_lock_wait((time.perf_counter() - started) * 1000)
        return self._make_release(key, token)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Async context manager form of acquire/release."""
        release = await self.acquire(key)
        try:
            yield
        finally:
            release()

    def _new_token(self) -> int:
        self._next_token += 1
        return self._next_token

    def _make_release(self, key: str, token: int) -> Release:
        released = False

        def release() -> None:
            nonlocal released
            if released:
                logger.warning("Lock for %r released twice; ignoring", key)
                return
            released = True
            self._release(key, token)

        return release

    def _release(self, key: str, token: int) -> None:
        entry = self._entries.get(key)
        if entry is None or entry.token != token:
            logger.warning("Release of %r with a stale handle; ignoring", key)
            return

        while entry.waiters:
            fut = entry.waiters.popleft()
            if fut.done():
                # Cancelled waiter
                continue
            entry.token = self._new_token()
            fut.set_result(entry.token)
            return

        del self._entries[key]
