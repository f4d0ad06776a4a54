from app.models.base import IDModel
from app.models.chat_session import ChatSession
from app.models.chat_message import ChatMessage
from app.models.enums import MessageRole

__all__ = [
    'IDModel',
    'ChatSession',
    'ChatMessage',
    'MessageRole',
]
