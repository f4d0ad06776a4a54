from typing import Optional
from sqlalchemy import func
from sqlmodel import Session, select
from app.core.config import settings
from app.models.chat_session import ChatSession
from app.models.chat_message import ChatMessage
from app.models.enums import MessageRole

TITLE_ELLIPSIS = '...'


def derive_title(content: str, max_len: Optional[int] = None) -> str:
    """Title for a chat taken from its first user message.

    Content up to ``max_len`` characters is used verbatim, longer content is
    cut to ``max_len`` characters followed by ``...``.
    """
    limit = settings.TITLE_MAX_LEN if max_len is None else max_len
    if len(content) > limit:
        return content[:limit] + TITLE_ELLIPSIS
    return content


def create_session(session: Session, title: Optional[str] = None) -> ChatSession:
    record = ChatSession(title=title or settings.DEFAULT_CHAT_TITLE)
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def list_sessions(
    session: Session,
    limit: Optional[int] = None,
    offset: int = 0,
) -> list[ChatSession]:
    statement = select(ChatSession).order_by(ChatSession.created_at.desc())
    if offset:
        statement = statement.offset(offset)
    if limit is not None:
        statement = statement.limit(limit)
    return list(session.exec(statement).all())


def get_session(session: Session, session_id: str) -> Optional[ChatSession]:
    return session.exec(select(ChatSession).where(ChatSession.id == session_id)).first()


def update_session_title(session: Session, record: ChatSession, title: str) -> ChatSession:
    record.title = title
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def delete_session(session: Session, record: ChatSession) -> int:
    """Delete a chat and every message in it. Returns the number of messages removed."""
    messages = session.exec(select(ChatMessage).where(ChatMessage.session_id == record.id)).all()
    for message in messages:
        session.delete(message)
    # messages must be gone before the chat row; there is no ORM relationship to order the deletes
    session.flush()
    session.delete(record)
    session.commit()
    return len(messages)


def create_message(
    session: Session,
    session_id: str,
    role: MessageRole,
    content: str,
) -> ChatMessage:
    record = ChatMessage(
        session_id=session_id,
        role=role,
        content=content,
    )
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def count_messages(session: Session, session_id: str) -> int:
    statement = select(func.count()).select_from(ChatMessage).where(ChatMessage.session_id == session_id)
    return session.exec(statement).one()


def list_messages(
    session: Session,
    session_id: str,
    limit: Optional[int] = None,
    offset: int = 0,
) -> list[ChatMessage]:
    statement = (
        select(ChatMessage)
        .where(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.timestamp.asc())
    )
    if offset:
        statement = statement.offset(offset)
    if limit is not None:
        statement = statement.limit(limit)
    return list(session.exec(statement).all())


def add_user_message(session: Session, session_id: str, content: str) -> ChatMessage:
    """Store a user turn and retitle the chat when it is the first message."""
    record = create_message(session, session_id, MessageRole.USER, content)
    if count_messages(session, session_id) == 1:
        chat = get_session(session, session_id)
        if chat:
            update_session_title(session, chat, derive_title(content))
    return record
