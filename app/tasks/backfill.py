"""Copy records written to the file mirror during an outage into the primary store.

Nothing here deletes or overwrites: a record is copied only when its id is
missing from the primary. Conversations go first so message foreign keys hold.
"""

import asyncio
import logging

from app.database import dispose_engines
from app.services.errors import TransientBackendError
from app.services.storage import ChatRepository, ConversationQuery, MessageQuery, build_repository
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def backfill(repo: ChatRepository) -> dict:
    """Copy fallback-only conversations, then messages, into the primary.

    Returns:
        Dict with copied counts, or skipped=True with a reason
    """
    primary, fallback = repo.primary, repo.fallback
    if not primary.is_configured():
        logger.info("Backfill skipped, primary store not configured")
        return {"skipped": True, "reason": "primary_not_configured"}

    conversations = await fallback.list_conversations(ConversationQuery())
    messages = await fallback.list_messages(MessageQuery())
    if not conversations and not messages:
        return {"skipped": False, "conversations": 0, "messages": 0}

    try:
        known_conversations = {
            c.id
            for c in await primary.list_conversations(
                ConversationQuery(ids=[c.id for c in conversations])
            )
        }
        copied_conversations = 0
        for conversation in conversations:
            if conversation.id in known_conversations:
                continue
            await primary.create_conversation(conversation)
            known_conversations.add(conversation.id)
            copied_conversations += 1

        known_messages = {
            m.id for m in await primary.list_messages(MessageQuery(ids=[m.id for m in messages]))
        }
        copied_messages = 0
        for message in messages:
            if message.id in known_messages:
                continue
            if message.conversation_id not in known_conversations:
                # Parent only exists on the primary if it was never mirrored
                parent = await primary.list_conversations(
                    ConversationQuery(ids=[message.conversation_id])
                )
                if not parent:
                    logger.warning(
                        f"Backfill skipped message {message.id}, "
                        f"conversation {message.conversation_id} missing everywhere"
                    )
                    continue
                known_conversations.add(message.conversation_id)
            await primary.create_message(message)
            copied_messages += 1
    except TransientBackendError as e:
        logger.warning(f"Backfill aborted, primary store unavailable: {e}")
        return {"skipped": True, "reason": "primary_unavailable"}

    logger.info(
        f"Backfilled {copied_conversations} conversations and {copied_messages} messages "
        "from the file mirror"
    )
    return {"skipped": False, "conversations": copied_conversations, "messages": copied_messages}


@celery_app.task(name="app.tasks.backfill.backfill_primary")
def backfill_primary() -> dict:
    """Periodic reconciliation of the file mirror into the primary store."""

    async def _backfill():
        try:
            return await backfill(build_repository())
        finally:
            await dispose_engines()

    return asyncio.run(_backfill())
