"""Pydantic schemas for the chat API."""

from app.schemas.auth import GUEST, Caller, CallerRole
from app.schemas.chat import (
    ConversationCreate,
    ConversationFilter,
    ConversationListResponse,
    ConversationRecord,
    ConversationResponse,
    ConversationSummary,
    ConversationUpdate,
    MarkReadRequest,
    MarkReadResponse,
    MessageCreate,
    MessageCreateResult,
    MessageListResponse,
    MessageRecord,
    UnreadCountResponse,
    WhatsAppLinkResponse,
)

__all__ = [
    "GUEST",
    "Caller",
    "CallerRole",
    "ConversationCreate",
    "ConversationFilter",
    "ConversationListResponse",
    "ConversationRecord",
    "ConversationResponse",
    "ConversationSummary",
    "ConversationUpdate",
    "MarkReadRequest",
    "MarkReadResponse",
    "MessageCreate",
    "MessageCreateResult",
    "MessageListResponse",
    "MessageRecord",
    "UnreadCountResponse",
    "WhatsAppLinkResponse",
]
