from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum
from typing import Optional

from loguru import logger


class CancelOutcome(str, Enum):
    STOPPED = 'stopped'
    NO_STREAM = 'no_stream'


class CancellationHandle:
    """One-shot trigger shared between a relay and whoever may stop it.

    The inference client polls :attr:`cancelled` on every read; nothing is
    interrupted pre-emptively.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class StreamRegistry:
    def __init__(self) -> None:
        self._handles: dict[str, CancellationHandle] = {}
        self._lock = asyncio.Lock()

    async def register(self, session_id: str, handle: CancellationHandle) -> Optional[CancellationHandle]:
        """Install ``handle`` for the session, cancelling any handle it replaces."""
        async with self._lock:
            previous = self._handles.get(session_id)
            self._handles[session_id] = handle
        if previous is not None and previous is not handle:
            previous.cancel()
            logger.info('stream.registry.replaced', session_id=session_id)
            return previous
        return None

    async def lookup(self, session_id: str) -> Optional[CancellationHandle]:
        return self._handles.get(session_id)

    async def cancel(self, session_id: str) -> CancelOutcome:
        async with self._lock:
            handle = self._handles.pop(session_id, None)
        if handle is None:
            return CancelOutcome.NO_STREAM
        handle.cancel()
        logger.info('stream.registry.cancelled', session_id=session_id)
        return CancelOutcome.STOPPED

    async def unregister(self, session_id: str, handle: Optional[CancellationHandle] = None) -> bool:
        """Drop the session's entry.

        With ``handle`` the entry is only removed while it still maps to that
        handle, so a replaced stream cannot evict its successor.
        """
        async with self._lock:
            current = self._handles.get(session_id)
            if current is None:
                return False
            if handle is not None and current is not handle:
                return False
            del self._handles[session_id]
            return True

    @asynccontextmanager
    async def claim(
        self,
        session_id: str,
        handle: Optional[CancellationHandle] = None,
    ) -> AsyncIterator[CancellationHandle]:
        handle = handle or CancellationHandle()
        # a handle stopped or replaced since it was reserved must not evict the live one
        if not handle.cancelled:
            await self.register(session_id, handle)
        try:
            yield handle
        finally:
            await self.unregister(session_id, handle)

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._handles


stream_registry = StreamRegistry()


def get_stream_registry() -> StreamRegistry:
    return stream_registry
