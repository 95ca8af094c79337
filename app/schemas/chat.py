"""Chat schemas - records shared by both stores plus API request/response bodies."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models import ConversationStatus, MessageType, SenderRole


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ConversationRecord(BaseModel):
    """A conversation as stored in either backend."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True, validate_default=True)

    id: str
    customer_ref: str | None = None
    customer_name: str
    customer_email: str | None = None
    customer_phone: str | None = None
    assigned_to: str | None = None
    status: ConversationStatus = ConversationStatus.ACTIVE
    created_at: datetime
    updated_at: datetime
    last_message_at: datetime

    @field_validator("created_at", "updated_at", "last_message_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def last_activity_at(self) -> datetime:
        return self.last_message_at or self.created_at


class ConversationSummary(ConversationRecord):
    """Conversation list entry with its computed unread counter."""

    unread_count: int = 0


class MessageRecord(BaseModel):
    """A message as stored in either backend."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True, validate_default=True)

    id: str
    conversation_id: str
    sender_ref: str | None = None
    sender_name: str
    sender_role: SenderRole = SenderRole.CUSTOMER
    content: str
    message_type: MessageType = MessageType.TEXT
    read_at: datetime | None = None
    created_at: datetime

    @field_validator("read_at", "created_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class ConversationCreate(BaseModel):
    """Schema for opening a conversation.

    customer_name is checked by the service so that a missing value surfaces
    as a chat ValidationError naming the field.
    """

    customer_ref: str | None = Field(None, description="External customer identity")
    customer_name: str | None = Field(None, description="Display name, may be a guest placeholder")
    customer_email: str | None = Field(None)
    customer_phone: str | None = Field(None)


class ConversationUpdate(BaseModel):
    """Schema for updating a conversation - all fields optional."""

    customer_name: str | None = Field(None)
    customer_email: str | None = Field(None)
    customer_phone: str | None = Field(None)
    assigned_to: str | None = Field(None)
    status: ConversationStatus | None = Field(None)


class ConversationFilter(BaseModel):
    """Filter for listing conversations."""

    status: ConversationStatus | Literal["all"] = ConversationStatus.ACTIVE
    assigned_to: str | None = None


class MessageCreate(BaseModel):
    """Schema for sending a message.

    Required fields are validated by the message processor.
    """

    conversation_id: str | None = Field(None)
    sender_ref: str | None = Field(None)
    sender_name: str | None = Field(None)
    sender_role: SenderRole = Field(default=SenderRole.CUSTOMER)
    content: str | None = Field(None)
    message_type: MessageType = Field(default=MessageType.TEXT)


class MessageCreateResult(BaseModel):
    """Created message plus the side effects callers need to refresh views."""

    success: bool = True
    data: MessageRecord
    welcome_sent: bool = False
    name_updated: bool = False


class MarkReadRequest(BaseModel):
    """Mark customer messages of a conversation as read."""

    conversation_id: str | None = Field(None)
    message_ids: list[str] | None = Field(None, description="Restrict to these ids")


class MarkReadResponse(BaseModel):
    success: bool = True
    updated: int


class UnreadCountResponse(BaseModel):
    success: bool = True
    count: int


class WhatsAppLinkResponse(BaseModel):
    url: str


class ConversationResponse(BaseModel):
    success: bool = True
    data: ConversationRecord


class ConversationListResponse(BaseModel):
    success: bool = True
    data: list[ConversationSummary]


class MessageListResponse(BaseModel):
    success: bool = True
    data: list[MessageRecord]
