import asyncio
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from loguru import logger
from sqlmodel import Session

from app.db.session import get_session
from app.schemas.chat import (
    ChatDeleteOut,
    ChatMessageCreate,
    ChatMessageOut,
    ChatRename,
    ChatRenameOut,
    ChatSessionOut,
    StreamStopOut,
)
from app.services.chat_service import (
    create_session,
    delete_session,
    get_session as get_chat_session,
    list_messages,
    list_sessions,
    update_session_title,
)
from app.services.stream_registry import (
    CancelOutcome,
    CancellationHandle,
    StreamRegistry,
    get_stream_registry,
)
from app.services.stream_relay import (
    FAILED_MARKER,
    ChannelEvent,
    QueueChannel,
    StreamRelay,
    get_stream_relay,
)

router = APIRouter(tags=['chats'])

DISCONNECT_POLL_INTERVAL = 0.5

_STOP_MESSAGES = {
    CancelOutcome.STOPPED: 'Stream stopped successfully',
    CancelOutcome.NO_STREAM: 'No active stream found for this chat',
}


def _ensure_chat(session: Session, chat_id: str):
    record = get_chat_session(session, chat_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Chat not found')
    return record


def _log_task_error(done_task: asyncio.Task) -> None:
    if done_task.cancelled():
        return
    error = done_task.exception()
    if error:
        logger.opt(exception=error).error('stream.relay.task_failed')


@router.post('/chat', response_model=ChatSessionOut, status_code=status.HTTP_201_CREATED)
def create_chat(session: Session = Depends(get_session)) -> ChatSessionOut:
    record = create_session(session)
    return ChatSessionOut(id=record.id, title=record.title, created_at=record.created_at)


@router.get('/chats', response_model=list[ChatSessionOut])
def list_chats(
    limit: Optional[int] = None,
    offset: int = 0,
    session: Session = Depends(get_session),
) -> list[ChatSessionOut]:
    return [
        ChatSessionOut(id=record.id, title=record.title, created_at=record.created_at)
        for record in list_sessions(session, limit=limit, offset=offset)
    ]


@router.get('/chat/{chat_id}', response_model=list[ChatMessageOut])
def get_chat_history(chat_id: str, session: Session = Depends(get_session)) -> list[ChatMessageOut]:
    _ensure_chat(session, chat_id)
    return [
        ChatMessageOut(
            id=record.id,
            role=record.role,
            content=record.content,
            timestamp=record.timestamp,
        )
        for record in list_messages(session, chat_id)
    ]


async def _relay_body(
    first: Optional[ChannelEvent],
    channel: QueueChannel,
    handle: CancellationHandle,
    chat_id: str,
) -> AsyncIterator[str]:
    event = first
    try:
        while event is not None:
            if event.is_error:
                yield FAILED_MARKER.format(reason=event.data)
            else:
                yield event.data
            event = await channel.get()
    finally:
        if event is not None:
            # response torn down before the relay closed the channel
            logger.info('stream.client_disconnected', session_id=chat_id)
            handle.cancel()


async def _first_event(
    request: Request,
    channel: QueueChannel,
    handle: CancellationHandle,
    chat_id: str,
) -> Optional[ChannelEvent]:
    """Wait for the relay's first event, cancelling the stream if the client leaves meanwhile."""
    pending = asyncio.ensure_future(channel.get())
    try:
        while True:
            done, _ = await asyncio.wait({pending}, timeout=DISCONNECT_POLL_INTERVAL)
            if done:
                return pending.result()
            if not handle.cancelled and await request.is_disconnected():
                logger.info('stream.client_disconnected', session_id=chat_id)
                handle.cancel()
    finally:
        if not pending.done():
            pending.cancel()


@router.post('/chat/{chat_id}/message')
async def send_chat_message(
    chat_id: str,
    payload: ChatMessageCreate,
    request: Request,
    session: Session = Depends(get_session),
    relay: StreamRelay = Depends(get_stream_relay),
):
    _ensure_chat(session, chat_id)
    await relay.persist_prompt(chat_id, payload.content)

    channel = QueueChannel()
    handle = await relay.reserve(chat_id)
    task = asyncio.create_task(relay.run(chat_id, payload.content, channel, handle))
    task.add_done_callback(_log_task_error)

    first = await _first_event(request, channel, handle, chat_id)
    if first is not None and first.is_error:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=first.data)

    return StreamingResponse(
        _relay_body(first, channel, handle, chat_id),
        media_type='text/plain; charset=utf-8',
    )


@router.post('/chat/{chat_id}/stop', response_model=StreamStopOut)
async def stop_chat_stream(
    chat_id: str,
    registry: StreamRegistry = Depends(get_stream_registry),
) -> StreamStopOut:
    outcome = await registry.cancel(chat_id)
    return StreamStopOut(
        message=_STOP_MESSAGES[outcome],
        chat_id=chat_id,
        timestamp=datetime.now(timezone.utc),
        status=outcome,
    )


@router.put('/chat/{chat_id}', response_model=ChatRenameOut)
def rename_chat(
    chat_id: str,
    payload: ChatRename,
    session: Session = Depends(get_session),
) -> ChatRenameOut:
    record = _ensure_chat(session, chat_id)
    record = update_session_title(session, record, payload.title)
    return ChatRenameOut(message='Chat renamed successfully', chat_id=chat_id, title=record.title)


@router.delete('/chat/{chat_id}', response_model=ChatDeleteOut)
def delete_chat(chat_id: str, session: Session = Depends(get_session)) -> ChatDeleteOut:
    record = _ensure_chat(session, chat_id)
    removed = delete_session(session, record)
    logger.info('chat.deleted', session_id=chat_id, messages=removed)
    return ChatDeleteOut(message='Chat deleted successfully', chat_id=chat_id)
