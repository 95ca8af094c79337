"""Backend-neutral filters for listing chat records."""

from collections.abc import Sequence
from dataclasses import dataclass

from app.schemas.chat import ConversationRecord, MessageRecord


@dataclass(frozen=True)
class ConversationQuery:
    """Conversation filter; None means "don't filter on this"."""

    status: str | None = None
    assigned_to: str | None = None
    customer_ref: str | None = None
    ids: Sequence[str] | None = None
    exclude_status: str | None = None

    def matches(self, record: ConversationRecord) -> bool:
        if self.status is not None and record.status != self.status:
            return False
        if self.exclude_status is not None and record.status == self.exclude_status:
            return False
        if self.assigned_to is not None and record.assigned_to != self.assigned_to:
            return False
        if self.customer_ref is not None and record.customer_ref != self.customer_ref:
            return False
        if self.ids is not None and record.id not in self.ids:
            return False
        return True


@dataclass(frozen=True)
class MessageQuery:
    """Message filter; None means "don't filter on this"."""

    conversation_id: str | None = None
    conversation_ids: Sequence[str] | None = None
    sender_role: str | None = None
    unread_only: bool = False
    ids: Sequence[str] | None = None

    def matches(self, record: MessageRecord) -> bool:
        if self.conversation_id is not None and record.conversation_id != self.conversation_id:
            return False
        if self.conversation_ids is not None and record.conversation_id not in self.conversation_ids:
            return False
        if self.sender_role is not None and record.sender_role != self.sender_role:
            return False
        if self.unread_only and record.read_at is not None:
            return False
        if self.ids is not None and record.id not in self.ids:
            return False
        return True


def sort_conversations(records: list[ConversationRecord]) -> list[ConversationRecord]:
    """Most recent activity first; id breaks ties so ordering is deterministic."""
    return sorted(records, key=lambda c: (c.last_activity_at, c.id), reverse=True)


def sort_messages(records: list[MessageRecord]) -> list[MessageRecord]:
    """Oldest first; id breaks ties so ordering is deterministic."""
    return sorted(records, key=lambda m: (m.created_at, m.id))
