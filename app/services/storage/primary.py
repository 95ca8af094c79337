"""Primary chat store - SQLAlchemy async ORM over the configured database."""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, load_settings
from app.database import get_session_maker
from app.models import Conversation, Message
from app.schemas.chat import ConversationRecord, MessageRecord
from app.services.errors import TransientBackendError
from app.services.storage.queries import ConversationQuery, MessageQuery

logger = logging.getLogger(__name__)


class SqlChatStore:
    """Conversations and messages in the primary relational store.

    Whether the store is configured is derived from settings on every call,
    so an outage that was fixed by configuration heals without a restart.
    """

    name = "primary"

    def __init__(self, settings_provider: Callable[[], Settings] = load_settings):
        self._settings_provider = settings_provider

    def is_configured(self) -> bool:
        """Check whether connection parameters are present and not placeholders."""
        return self._settings_provider().primary_configured

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        url = self._settings_provider().async_database_url
        try:
            async with get_session_maker(url)() as session:
                yield session
        except TransientBackendError:
            raise
        except (SQLAlchemyError, OSError) as e:
            raise TransientBackendError(operation, str(e)) from e
        except Exception as e:
            # Driver import or other unexpected failures still fall back
            logger.error(f"Unexpected primary store error during {operation}: {e}", exc_info=True)
            raise TransientBackendError(operation, str(e)) from e

    # Conversations

    async def list_conversations(self, query: ConversationQuery) -> list[ConversationRecord]:
        stmt = _filter_conversations(select(Conversation), query).order_by(
            func.coalesce(Conversation.last_message_at, Conversation.created_at).desc(),
            Conversation.id.desc(),
        )
        async with self._session("list_conversations") as db:
            result = await db.execute(stmt)
            return [ConversationRecord.model_validate(row) for row in result.scalars().all()]

    async def create_conversation(self, record: ConversationRecord) -> ConversationRecord:
        async with self._session("create_conversation") as db:
            row = Conversation(**record.model_dump())
            db.add(row)
            await db.commit()
            return ConversationRecord.model_validate(row)

    async def update_conversation(
        self, conversation_id: str, patch: dict[str, Any]
    ) -> ConversationRecord | None:
        async with self._session("update_conversation") as db:
            row = await db.get(Conversation, conversation_id)
            if row is None:
                return None
            for key, value in patch.items():
                setattr(row, key, value)
            await db.commit()
            return ConversationRecord.model_validate(row)

    # Messages

    async def list_messages(self, query: MessageQuery) -> list[MessageRecord]:
        stmt = _filter_messages(select(Message), query).order_by(
            Message.created_at.asc(), Message.id.asc()
        )
        async with self._session("list_messages") as db:
            result = await db.execute(stmt)
            return [MessageRecord.model_validate(row) for row in result.scalars().all()]

    async def create_message(self, record: MessageRecord) -> MessageRecord:
        async with self._session("create_message") as db:
            if await db.get(Conversation, record.conversation_id) is None:
                # Conversation was opened during an outage; keep its messages beside it
                raise TransientBackendError(
                    "create_message", f"conversation {record.conversation_id} is only on the file mirror"
                )
            row = Message(**record.model_dump())
            db.add(row)
            await db.commit()
            return MessageRecord.model_validate(row)

    async def update_message(self, message_id: str, patch: dict[str, Any]) -> MessageRecord | None:
        async with self._session("update_message") as db:
            row = await db.get(Message, message_id)
            if row is None:
                return None
            for key, value in patch.items():
                setattr(row, key, value)
            await db.commit()
            return MessageRecord.model_validate(row)


def _filter_conversations(stmt: Select, query: ConversationQuery) -> Select:
    if query.status is not None:
        stmt = stmt.where(Conversation.status == query.status)
    if query.exclude_status is not None:
        stmt = stmt.where(Conversation.status != query.exclude_status)
    if query.assigned_to is not None:
        stmt = stmt.where(Conversation.assigned_to == query.assigned_to)
    if query.customer_ref is not None:
        stmt = stmt.where(Conversation.customer_ref == query.customer_ref)
    if query.ids is not None:
        stmt = stmt.where(Conversation.id.in_(list(query.ids)))
    return stmt


def _filter_messages(stmt: Select, query: MessageQuery) -> Select:
    if query.conversation_id is not None:
        stmt = stmt.where(Message.conversation_id == query.conversation_id)
    if query.conversation_ids is not None:
        stmt = stmt.where(Message.conversation_id.in_(list(query.conversation_ids)))
    if query.sender_role is not None:
        stmt = stmt.where(Message.sender_role == query.sender_role)
    if query.unread_only:
        stmt = stmt.where(Message.read_at.is_(None))
    if query.ids is not None:
        stmt = stmt.where(Message.id.in_(list(query.ids)))
    return stmt
