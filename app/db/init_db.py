from sqlmodel import SQLModel
from app.db.session import engine
from app.models import (  # noqa: F401
    chat_session,
    chat_message,
)


def init_db(drop_all: bool = False) -> None:
    if drop_all:
        SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
