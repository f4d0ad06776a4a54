from sqlalchemy import create_engine, inspect

from app.db import init_db as init_module


def test_init_db_creates_chat_tables(monkeypatch):
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    monkeypatch.setattr(init_module, "engine", engine)

    init_module.init_db(drop_all=True)

    inspector = inspect(engine)
    assert {"chat_sessions", "chat_messages"} <= set(inspector.get_table_names())
    columns = {column["name"] for column in inspector.get_columns("chat_messages")}
    assert columns == {"id", "session_id", "role", "content", "timestamp"}
    foreign_keys = inspector.get_foreign_keys("chat_messages")
    assert foreign_keys[0]["referred_table"] == "chat_sessions"
