from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import anyio
from fastapi import Depends
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.db.session import engine
from app.models.chat_message import ChatMessage
from app.models.enums import MessageRole
from app.services.chat_service import add_user_message, create_message
from app.services.inference_client import (
    InferenceCancelled,
    InferenceClient,
    InferenceError,
    get_inference_client,
)
from app.services.stream_registry import CancellationHandle, StreamRegistry, get_stream_registry

STOPPED_MARKER = '\n[Stream stopped by user]'
FAILED_MARKER = '\n[Stream failed: {reason}]'


class StreamOutcome(str, Enum):
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


class ResponseChannel(ABC):
    """Outbound side of a relay, independent of the transport carrying it."""

    @abstractmethod
    async def send(self, fragment: str) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def close_with_error(self, message: str) -> None: ...


@dataclass(frozen=True)
class ChannelEvent:
    kind: str
    data: str

    @property
    def is_error(self) -> bool:
        return self.kind == 'error'


class QueueChannel(ResponseChannel):
    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[ChannelEvent]] = asyncio.Queue()
        self.fragments_sent = 0
        self.closed = False

    async def send(self, fragment: str) -> None:
        if self.closed:
            return
        self.fragments_sent += 1
        self._queue.put_nowait(ChannelEvent('data', fragment))

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(None)

    async def close_with_error(self, message: str) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(ChannelEvent('error', message))
        self._queue.put_nowait(None)

    async def get(self) -> Optional[ChannelEvent]:
        """Next event, or ``None`` once the channel is closed."""
        return await self._queue.get()


def _default_session_factory() -> Session:
    return Session(engine)


class StreamRelay:
    def __init__(
        self,
        *,
        registry: StreamRegistry,
        inference: InferenceClient,
        session_factory: Callable[[], Session] = _default_session_factory,
    ) -> None:
        self._registry = registry
        self._inference = inference
        self._session_factory = session_factory

    async def persist_prompt(self, session_id: str, content: str) -> ChatMessage:
        def _persist() -> ChatMessage:
            with self._session_factory() as session:
                return add_user_message(session, session_id, content)

        record = await anyio.to_thread.run_sync(_persist)
        logger.info('stream.relay.prompt_saved', session_id=session_id, message_id=record.id)
        return record

    async def reserve(self, session_id: str) -> CancellationHandle:
        """Register a fresh handle now so a stop sent before :meth:`run` starts still lands."""
        handle = CancellationHandle()
        await self._registry.register(session_id, handle)
        return handle

    async def _persist_reply(self, session_id: str, content: str) -> ChatMessage:
        def _persist() -> ChatMessage:
            with self._session_factory() as session:
                return create_message(session, session_id, MessageRole.ASSISTANT, content)

        return await anyio.to_thread.run_sync(_persist)

    async def run(
        self,
        session_id: str,
        content: str,
        channel: ResponseChannel,
        handle: Optional[CancellationHandle] = None,
    ) -> StreamOutcome:
        """Stream a reply for ``content`` into ``channel`` and store it when complete.

        The user message must already be persisted (see :meth:`persist_prompt`).
        Cancelled and failed streams leave no assistant message behind.
        """
        chunks: list[str] = []
        async with self._registry.claim(session_id, handle) as claimed:
            logger.info('stream.relay.start', session_id=session_id, model=self._inference.model)
            try:
                async with aclosing(self._inference.stream_fragments(content, claimed)) as fragments:
                    async for fragment in fragments:
                        if not fragment:
                            continue
                        chunks.append(fragment)
                        await channel.send(fragment)
            except InferenceCancelled:
                logger.info('stream.relay.cancelled', session_id=session_id, chunks=len(chunks))
                await channel.send(STOPPED_MARKER)
                await channel.close()
                return StreamOutcome.CANCELLED
            except InferenceError as error:
                logger.warning('stream.relay.failed', session_id=session_id, error=str(error))
                await channel.close_with_error(str(error))
                return StreamOutcome.FAILED
            except Exception as error:  # noqa: BLE001
                logger.exception('stream.relay.crashed', session_id=session_id)
                await channel.close_with_error(str(error) or error.__class__.__name__)
                return StreamOutcome.FAILED

            if not chunks:
                logger.warning('stream.relay.empty', session_id=session_id)
                await channel.close()
                return StreamOutcome.COMPLETED

            reply = ''.join(chunks)
            try:
                record = await self._persist_reply(session_id, reply)
            except SQLAlchemyError:
                # fragments already reached the client but will be missing from history
                logger.exception('stream.relay.persist_failed', session_id=session_id, content_len=len(reply))
                await channel.close_with_error('failed to save reply')
                return StreamOutcome.FAILED
            logger.info(
                'stream.relay.done',
                session_id=session_id,
                message_id=record.id,
                chunks=len(chunks),
                content_len=len(reply),
            )
            await channel.close()
            return StreamOutcome.COMPLETED


def get_stream_relay(
    registry: StreamRegistry = Depends(get_stream_registry),
    inference: InferenceClient = Depends(get_inference_client),
) -> StreamRelay:
    return StreamRelay(registry=registry, inference=inference)
