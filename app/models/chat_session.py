from datetime import datetime
from sqlmodel import Field, SQLModel
from app.core.config import settings
from app.models.base import IDModel, timestamp_field


class ChatSession(IDModel, SQLModel, table=True):
    __tablename__ = 'chat_sessions'

    title: str = Field(default_factory=lambda: settings.DEFAULT_CHAT_TITLE, nullable=False)
    created_at: datetime = timestamp_field()
