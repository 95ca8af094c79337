"""Unread counts and read marking.

Only customer-authored messages are ever unread; staff, admin and system
messages never count and are never marked.
"""

import logging
from collections import Counter
from collections.abc import Sequence
from datetime import datetime, timezone

from app.models import ConversationStatus, SenderRole
from app.schemas.auth import Caller
from app.services import permissions
from app.services.errors import ValidationError
from app.services.storage import ChatRepository, ConversationQuery, MessageQuery

logger = logging.getLogger(__name__)


async def unread_counts_by_conversation(
    repo: ChatRepository, conversation_ids: Sequence[str]
) -> dict[str, int]:
    """Count unread customer messages per conversation."""
    if not conversation_ids:
        return {}
    unread = await repo.list_messages(
        MessageQuery(
            conversation_ids=list(conversation_ids),
            sender_role=SenderRole.CUSTOMER.value,
            unread_only=True,
        )
    )
    return dict(Counter(message.conversation_id for message in unread))


async def count_unread(repo: ChatRepository, caller: Caller) -> int:
    """Unread customer messages across the active conversations a caller can see.

    Admins count every active conversation, staff only the ones assigned to
    them. Customers have no unread badge and always get 0.
    """
    if not permissions.has_permission(caller, "view_unread_count"):
        return 0

    query = ConversationQuery(status=ConversationStatus.ACTIVE.value)
    if caller.is_staff:
        query = ConversationQuery(
            status=ConversationStatus.ACTIVE.value, assigned_to=caller.id or ""
        )

    conversations = await repo.list_conversations(query)
    counts = await unread_counts_by_conversation(repo, [c.id for c in conversations])
    return sum(counts.values())


async def mark_read(
    repo: ChatRepository,
    conversation_id: str | None,
    message_ids: Sequence[str] | None = None,
) -> int:
    """Set read_at on the conversation's unread customer messages.

    Args:
        repo: Chat repository
        conversation_id: Conversation whose messages to mark
        message_ids: Optional subset of message ids to restrict marking to;
            None or an empty list marks every unread customer message

    Returns:
        Number of messages marked
    """
    if not conversation_id:
        raise ValidationError("conversation_id")

    unread = await repo.list_messages(
        MessageQuery(
            conversation_id=conversation_id,
            sender_role=SenderRole.CUSTOMER.value,
            unread_only=True,
            ids=list(message_ids) if message_ids else None,
        )
    )
    if not unread:
        return 0

    read_at = datetime.now(timezone.utc)
    marked = 0
    for message in unread:
        if await repo.update_message(message.id, {"read_at": read_at}) is not None:
            marked += 1

    logger.info(f"Marked {marked} message(s) read in conversation {conversation_id}")
    return marked
