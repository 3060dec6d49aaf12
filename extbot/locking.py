"""Lockable capability for serialized execution.

Commands and event handlers are unrelated kinds that share one
behaviour: they may be configured to run at most one execution at a
time. Lockable carries that behaviour as a mixin.

The guard is an asyncio.Lock. Waiters are woken in the order they
started waiting, so acquisition is first-come first-served.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional


class Lockable:
    """Mixin adding an optional per-object execution mutex.

    Attributes:
        locking: Set to True to serialize executions.
        mutex: Created lazily, only while ``locking`` is True. Never
            shared between objects.
    """

    locking: bool = False
    mutex: Optional[asyncio.Lock] = None

    def ensure_mutex(self) -> Optional[asyncio.Lock]:
        """Create the mutex if locking is enabled and none exists yet."""
        if self.locking and self.mutex is None:
            self.mutex = asyncio.Lock()
        return self.mutex if self.locking else None

    @asynccontextmanager
    async def guard(self) -> AsyncIterator[None]:
        """Hold the mutex for the duration of the block when locking.

        With locking disabled this is a no-op, even if a mutex was
        created while locking was enabled earlier.
        """
        if not self.locking:
            yield
            return

        mutex = self.ensure_mutex()
        async with mutex:
            yield
