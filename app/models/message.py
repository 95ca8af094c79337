"""Message model - represents individual messages in a conversation."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.conversation import Conversation


class SenderRole(str, Enum):
    """Who authored a message."""

    ADMIN = "admin"
    STAFF = "staff"
    CUSTOMER = "customer"


class MessageType(str, Enum):
    """Message content type enum."""

    TEXT = "text"
    SYSTEM = "system"
    WHATSAPP_LINK = "whatsapp_link"


class Message(Base):
    """Individual messages in a conversation.

    Messages are immutable once written, apart from read_at.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_message_conversation_created", "conversation_id", "created_at"),
        Index("ix_message_unread", "sender_role", "read_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    conversation_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("conversations.id"), nullable=False
    )

    sender_ref: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )  # Null for system and guest senders
    sender_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sender_role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SenderRole.CUSTOMER.value
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=MessageType.TEXT.value,
    )

    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    conversation: Mapped["Conversation"] = relationship("Conversation", back_populates="messages")

    def __repr__(self) -> str:
        """String representation."""
        content_preview = self.content[:50] + "..." if len(self.content) > 50 else self.content
        return f"<Message(id={self.id}, sender_role='{self.sender_role}', content='{content_preview}')>"
