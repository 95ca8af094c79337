"""Diff-before-replace reconciliation of fetched snapshots with rendered state.

Every function returns the current list object unchanged when nothing
relevant differs, so callers detect "no change" with an identity check.
"""

from app.schemas.chat import ConversationRecord, ConversationSummary, MessageRecord
from app.services.storage.queries import sort_conversations, sort_messages

# Fields whose change in a listed conversation forces a re-render
TRACKED_CONVERSATION_FIELDS = ("last_message_at", "unread_count")


def _has_new_ids(current: list, fetched: list) -> bool:
    known = {record.id for record in current}
    return any(record.id not in known for record in fetched)


def reconcile_messages(
    current: list[MessageRecord], fetched: list[MessageRecord]
) -> list[MessageRecord]:
    """Replace the rendered messages only if the fetched set differs by size or ids."""
    if len(current) != len(fetched) or _has_new_ids(current, fetched):
        return sort_messages(fetched)
    return current


def reconcile_conversations(
    current: list[ConversationSummary], fetched: list[ConversationSummary]
) -> list[ConversationSummary]:
    """Like reconcile_messages, but also compares tracked fields of matching ids."""
    if len(current) != len(fetched) or _has_new_ids(current, fetched):
        return sort_conversations(fetched)

    by_id = {record.id: record for record in current}
    for record in fetched:
        previous = by_id[record.id]
        if any(
            getattr(record, field) != getattr(previous, field)
            for field in TRACKED_CONVERSATION_FIELDS
        ):
            return sort_conversations(fetched)
    return current


def merge_pushed_message(
    current: list[MessageRecord], message: MessageRecord
) -> list[MessageRecord]:
    """Insert a pushed message unless its id is already rendered; keep time order."""
    if any(record.id == message.id for record in current):
        return current
    return sort_messages([*current, message])


def merge_pushed_conversation(
    current: list[ConversationSummary], conversation: ConversationRecord
) -> list[ConversationSummary]:
    """Insert a pushed conversation unless its id is already listed."""
    if any(record.id == conversation.id for record in current):
        return current
    summary = ConversationSummary.model_validate(conversation.model_dump())
    return sort_conversations([*current, summary])
