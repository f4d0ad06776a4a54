from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from app.models.enums import MessageRole
from app.services.stream_registry import CancelOutcome


class ChatSessionOut(BaseModel):
    id: str
    title: str
    created_at: datetime


class ChatMessageOut(BaseModel):
    id: str
    role: MessageRole
    content: str
    timestamp: datetime


class ChatMessageCreate(BaseModel):
    content: str = Field(..., min_length=1)


class ChatRename(BaseModel):
    title: str = Field(..., min_length=1)


class ChatRenameOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    chat_id: str = Field(..., alias='chatId')
    title: str


class ChatDeleteOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    chat_id: str = Field(..., alias='chatId')


class StreamStopOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    chat_id: str = Field(..., alias='chatId')
    timestamp: datetime
    status: CancelOutcome
