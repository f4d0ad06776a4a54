from datetime import datetime
from sqlalchemy import Text
from sqlmodel import Field, SQLModel
from app.models.base import IDModel, timestamp_field
from app.models.enums import MessageRole, enum_column


class ChatMessage(IDModel, SQLModel, table=True):
    __tablename__ = 'chat_messages'

    session_id: str = Field(foreign_key='chat_sessions.id', index=True)
    role: MessageRole = Field(sa_column=enum_column(MessageRole, 'message_role'))
    content: str = Field(sa_type=Text, sa_column_kwargs={"nullable": False})
    timestamp: datetime = timestamp_field()
