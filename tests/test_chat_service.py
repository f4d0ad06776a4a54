from sqlmodel import Session

from app.db.session import engine
from app.models.enums import MessageRole
from app.services.chat_service import (
    add_user_message,
    count_messages,
    create_message,
    create_session,
    delete_session,
    derive_title,
    get_session,
    list_messages,
)


def test_derive_title_keeps_short_content():
    assert derive_title("Hello") == "Hello"
    assert derive_title("a" * 30) == "a" * 30


def test_derive_title_truncates_long_content():
    content = "The quick brown fox jumps over the lazy dog"
    assert derive_title(content) == content[:30] + "..."
    assert derive_title("abcdef", max_len=3) == "abc..."


def test_add_user_message_only_titles_first_message():
    with Session(engine) as session:
        chat = create_session(session)
        add_user_message(session, chat.id, "first question")
        create_message(session, chat.id, MessageRole.ASSISTANT, "answer")
        add_user_message(session, chat.id, "second question")

        assert get_session(session, chat.id).title == "first question"
        roles = [record.role for record in list_messages(session, chat.id)]
        assert roles == [MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER]


def test_delete_session_removes_messages():
    with Session(engine) as session:
        chat = create_session(session)
        for index in range(3):
            create_message(session, chat.id, MessageRole.USER, f"m{index}")
        chat_id = chat.id

        removed = delete_session(session, chat)

        assert removed == 3
        assert count_messages(session, chat_id) == 0
        assert get_session(session, chat_id) is None
