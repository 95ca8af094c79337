"""Conversation service - lifecycle, assignment and visibility.

Status transitions:

    (create) -> active
    active   -> closed     explicit staff/admin action
    closed   -> active     explicit, or implicitly on any new message
    active   -> archived   admin only; archived is terminal
"""

import logging
from datetime import datetime, timezone

from app.models import ConversationStatus
from app.schemas.auth import Caller
from app.schemas.chat import (
    ConversationCreate,
    ConversationFilter,
    ConversationRecord,
    ConversationSummary,
    ConversationUpdate,
    MessageRecord,
)
from app.services import permissions
from app.services.errors import NotFoundError, ValidationError
from app.services.push import CONVERSATIONS_TOPIC, PushBroker
from app.services.read_state import unread_counts_by_conversation
from app.services.storage import ChatRepository, ConversationQuery, MessageQuery
from app.utils.ids import generate_id

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    ConversationStatus.ACTIVE.value: {ConversationStatus.CLOSED.value, ConversationStatus.ARCHIVED.value},
    ConversationStatus.CLOSED.value: {ConversationStatus.ACTIVE.value},
    ConversationStatus.ARCHIVED.value: set(),
}


def can_transition(current: str, target: str) -> bool:
    """Check whether a status change is allowed (no-op changes always are)."""
    return current == target or target in ALLOWED_TRANSITIONS.get(current, set())


async def get_conversation(
    repo: ChatRepository, conversation_id: str, caller: Caller | None = None
) -> ConversationRecord:
    """Get a conversation by id, enforcing visibility when a caller is given."""
    if not conversation_id:
        raise ValidationError("conversation_id")
    conversation = await repo.get_conversation(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation", conversation_id)
    if caller is not None and not permissions.can_view_conversation(caller, conversation):
        # Invisible conversations look exactly like missing ones
        raise NotFoundError("Conversation", conversation_id)
    return conversation


async def create_conversation(
    repo: ChatRepository,
    data: ConversationCreate,
    push: PushBroker | None = None,
) -> tuple[ConversationRecord, bool]:
    """Open a conversation, or return the customer's existing one.

    A customer holds at most one non-archived conversation; a closed one is
    reopened rather than duplicated.

    Returns:
        (conversation, created)
    """
    if not data.customer_name or not data.customer_name.strip():
        raise ValidationError("customer_name")

    if data.customer_ref:
        existing = await repo.list_conversations(
            ConversationQuery(
                customer_ref=data.customer_ref,
                exclude_status=ConversationStatus.ARCHIVED.value,
            )
        )
        if existing:
            conversation = existing[0]
            if len(existing) > 1:
                logger.warning(
                    f"Customer {data.customer_ref} has {len(existing)} open conversations, "
                    f"using most recent {conversation.id}"
                )
            if conversation.status == ConversationStatus.CLOSED.value:
                conversation = await _set_status(repo, conversation.id, ConversationStatus.ACTIVE)
            return conversation, False

    now = datetime.now(timezone.utc)
    record = ConversationRecord(
        id=generate_id("conv"),
        customer_ref=data.customer_ref,
        customer_name=data.customer_name.strip(),
        customer_email=data.customer_email,
        customer_phone=data.customer_phone,
        status=ConversationStatus.ACTIVE,
        created_at=now,
        updated_at=now,
        last_message_at=now,
    )
    conversation = await repo.create_conversation(record)
    logger.info(f"Created conversation {conversation.id} for {conversation.customer_name}")

    if push is not None:
        push.publish(CONVERSATIONS_TOPIC, conversation)

    return conversation, True


async def update_conversation(
    repo: ChatRepository,
    conversation_id: str,
    data: ConversationUpdate,
    caller: Caller,
) -> ConversationRecord:
    """Apply a partial update after checking permissions and the transition table."""
    conversation = await get_conversation(repo, conversation_id, caller)
    changes = data.model_dump(exclude_unset=True)

    for field in changes:
        if field == "status":
            continue
        action = permissions.FIELD_PERMISSION_MAP[field]
        if not permissions.has_permission(caller, action):
            raise ValidationError(field, permissions.get_permission_denied_message(action))

    if "customer_name" in changes and not (changes["customer_name"] or "").strip():
        raise ValidationError("customer_name")

    if "status" in changes:
        target = ConversationStatus(changes["status"]).value
        if target != conversation.status:
            action = permissions.STATUS_PERMISSION_MAP[target]
            if not permissions.has_permission(caller, action):
                raise ValidationError("status", permissions.get_permission_denied_message(action))
        if not can_transition(conversation.status, target):
            raise ValidationError(
                "status", f"Cannot change status from {conversation.status} to {target}"
            )
        changes["status"] = target

    if not changes:
        return conversation

    changes["updated_at"] = datetime.now(timezone.utc)
    updated = await repo.update_conversation(conversation_id, changes)
    if updated is None:
        raise NotFoundError("Conversation", conversation_id)

    logger.info(f"Updated conversation {conversation_id}: {sorted(changes)}")
    return updated


async def close_conversation(
    repo: ChatRepository, conversation_id: str, caller: Caller
) -> ConversationRecord:
    return await update_conversation(
        repo, conversation_id, ConversationUpdate(status=ConversationStatus.CLOSED), caller
    )


async def reopen_conversation(
    repo: ChatRepository, conversation_id: str, caller: Caller
) -> ConversationRecord:
    return await update_conversation(
        repo, conversation_id, ConversationUpdate(status=ConversationStatus.ACTIVE), caller
    )


async def archive_conversation(
    repo: ChatRepository, conversation_id: str, caller: Caller
) -> ConversationRecord:
    return await update_conversation(
        repo, conversation_id, ConversationUpdate(status=ConversationStatus.ARCHIVED), caller
    )


async def assign_conversation(
    repo: ChatRepository, conversation_id: str, assignee: str | None, caller: Caller
) -> ConversationRecord:
    return await update_conversation(
        repo, conversation_id, ConversationUpdate(assigned_to=assignee), caller
    )


async def list_conversations(
    repo: ChatRepository,
    filters: ConversationFilter,
    caller: Caller,
) -> list[ConversationSummary]:
    """List conversations visible to the caller, newest activity first.

    Staff are always scoped to their own assignments and customers to their
    own conversations, whatever filter they pass.
    """
    status = None if filters.status == "all" else ConversationStatus(filters.status).value
    assigned_to = filters.assigned_to
    customer_ref = None

    if caller.is_staff:
        assigned_to = caller.id or ""
    elif caller.is_customer:
        if caller.id is None:
            return []
        customer_ref = caller.id

    conversations = await repo.list_conversations(
        ConversationQuery(status=status, assigned_to=assigned_to, customer_ref=customer_ref)
    )
    counts = await unread_counts_by_conversation(repo, [c.id for c in conversations])

    return [
        ConversationSummary(**c.model_dump(), unread_count=counts.get(c.id, 0))
        for c in conversations
    ]


async def list_messages(
    repo: ChatRepository, conversation_id: str, caller: Caller
) -> list[MessageRecord]:
    """Messages of a visible conversation, oldest first."""
    conversation = await get_conversation(repo, conversation_id, caller)
    return await repo.list_messages(MessageQuery(conversation_id=conversation.id))


async def reopen_if_closed(repo: ChatRepository, conversation: ConversationRecord) -> ConversationRecord:
    """Reactivate a closed conversation as a side effect of a new message."""
    if conversation.status != ConversationStatus.CLOSED.value:
        return conversation
    logger.info(f"Reopening closed conversation {conversation.id} on new message")
    return await _set_status(repo, conversation.id, ConversationStatus.ACTIVE)


async def _set_status(
    repo: ChatRepository, conversation_id: str, status: ConversationStatus
) -> ConversationRecord:
    updated = await repo.update_conversation(
        conversation_id,
        {"status": status.value, "updated_at": datetime.now(timezone.utc)},
    )
    if updated is None:
        raise NotFoundError("Conversation", conversation_id)
    return updated
