"""Conversation model - a support thread between one customer and staff."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.message import Message


class ConversationStatus(str, Enum):
    """Conversation status enum."""

    ACTIVE = "active"
    CLOSED = "closed"
    ARCHIVED = "archived"


class Conversation(Base, TimestampMixin):
    """A customer support conversation."""

    __tablename__ = "conversations"
    __table_args__ = (
        Index("ix_conversation_customer_ref", "customer_ref"),
        Index("ix_conversation_status_last_message", "status", "last_message_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    customer_ref: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )  # External identity, null for guests
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    assigned_to: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ConversationStatus.ACTIVE.value,
    )

    last_message_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    messages: Mapped[list["Message"]] = relationship("Message", back_populates="conversation")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Conversation(id={self.id}, status='{self.status}', last_message_at={self.last_message_at})>"
