"""SQLAlchemy models for the chat primary store."""

from app.models.base import Base, TimestampMixin
from app.models.conversation import Conversation, ConversationStatus
from app.models.message import Message, MessageType, SenderRole

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Models
    "Conversation",
    "Message",
    # Enums
    "ConversationStatus",
    "SenderRole",
    "MessageType",
]
