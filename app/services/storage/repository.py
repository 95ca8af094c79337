"""Dual-backend chat repository.

Every operation asks the primary store first and falls back to the local file
mirror. While the primary is up, lists also include records that so far exist
only on the mirror. There is no transaction spanning the two: a write that partly reached
the primary before failing is repeated on the mirror under the same id, and a
later backfill (see app.tasks.backfill) reconciles the mirror into the primary.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

from app.config import Settings, load_settings
from app.schemas.chat import ConversationRecord, MessageRecord
from app.services.errors import TransientBackendError
from app.services.storage.fallback import JsonFileChatStore
from app.services.storage.primary import SqlChatStore
from app.services.storage.queries import (
    ConversationQuery,
    MessageQuery,
    sort_conversations,
    sort_messages,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", ConversationRecord, MessageRecord)


class ChatStore(Protocol):
    """Operations both backends implement. There is deliberately no delete."""

    name: str

    async def list_conversations(self, query: ConversationQuery) -> list[ConversationRecord]: ...

    async def create_conversation(self, record: ConversationRecord) -> ConversationRecord: ...

    async def update_conversation(
        self, conversation_id: str, patch: dict[str, Any]
    ) -> ConversationRecord | None: ...

    async def list_messages(self, query: MessageQuery) -> list[MessageRecord]: ...

    async def create_message(self, record: MessageRecord) -> MessageRecord: ...

    async def update_message(
        self, message_id: str, patch: dict[str, Any]
    ) -> MessageRecord | None: ...


class ChatRepository:
    """Uniform list/create/update over conversations and messages."""

    def __init__(self, primary: SqlChatStore, fallback: ChatStore):
        self.primary = primary
        self.fallback = fallback

    async def _run(
        self,
        operation: str,
        primary_call: Callable[[], Awaitable[T]],
        fallback_call: Callable[[], Awaitable[T]],
    ) -> T:
        if not self.primary.is_configured():
            logger.debug(f"Primary store not configured, {operation} served by file mirror")
            return await fallback_call()
        try:
            return await primary_call()
        except TransientBackendError as e:
            logger.warning(f"Falling back to file mirror for {operation}: {e}")
            return await fallback_call()

    async def _run_lookup(
        self,
        operation: str,
        primary_call: Callable[[], Awaitable[T | None]],
        fallback_call: Callable[[], Awaitable[T | None]],
    ) -> T | None:
        if not self.primary.is_configured():
            logger.debug(f"Primary store not configured, {operation} served by file mirror")
            return await fallback_call()
        try:
            result = await primary_call()
        except TransientBackendError as e:
            logger.warning(f"Falling back to file mirror for {operation}: {e}")
            return await fallback_call()
        if result is None:
            # Record may only exist on the mirror (created during an outage)
            result = await fallback_call()
            if result is not None:
                logger.warning(f"{operation} hit a record that only exists on the file mirror")
        return result

    async def _run_merged(
        self,
        operation: str,
        primary_call: Callable[[], Awaitable[list[R]]],
        fallback_call: Callable[[], Awaitable[list[R]]],
        primary_lookup: Callable[[list[str]], Awaitable[list[R]]],
        sort: Callable[[list[R]], list[R]],
    ) -> list[R]:
        if not self.primary.is_configured():
            logger.debug(f"Primary store not configured, {operation} served by file mirror")
            return await fallback_call()
        try:
            records = await primary_call()
        except TransientBackendError as e:
            logger.warning(f"Falling back to file mirror for {operation}: {e}")
            return await fallback_call()
        # Records written during an outage stay on the mirror until backfilled
        known = {r.id for r in records}
        candidates = [r for r in await fallback_call() if r.id not in known]
        if not candidates:
            return records
        # Backfilled copies left on the mirror are stale, the primary one wins
        try:
            backfilled = {r.id for r in await primary_lookup([r.id for r in candidates])}
        except TransientBackendError as e:
            logger.warning(f"Could not check mirror records against primary for {operation}: {e}")
            backfilled = set()
        mirror_only = [r for r in candidates if r.id not in backfilled]
        if not mirror_only:
            return records
        logger.debug(f"{operation} merged {len(mirror_only)} record(s) only on the file mirror")
        return sort([*records, *mirror_only])

    # Conversations

    async def list_conversations(
        self, query: ConversationQuery | None = None
    ) -> list[ConversationRecord]:
        query = query or ConversationQuery()
        return await self._run_merged(
            "list_conversations",
            lambda: self.primary.list_conversations(query),
            lambda: self.fallback.list_conversations(query),
            lambda ids: self.primary.list_conversations(ConversationQuery(ids=ids)),
            sort_conversations,
        )

    async def get_conversation(self, conversation_id: str) -> ConversationRecord | None:
        """Look a conversation up by id, consulting the mirror on a primary miss."""
        query = ConversationQuery(ids=[conversation_id])
        return await self._run_lookup(
            "get_conversation",
            lambda: _first(self.primary.list_conversations(query)),
            lambda: _first(self.fallback.list_conversations(query)),
        )

    async def create_conversation(self, record: ConversationRecord) -> ConversationRecord:
        return await self._run(
            "create_conversation",
            lambda: self.primary.create_conversation(record),
            lambda: self.fallback.create_conversation(record),
        )

    async def update_conversation(
        self, conversation_id: str, patch: dict[str, Any]
    ) -> ConversationRecord | None:
        return await self._run_lookup(
            "update_conversation",
            lambda: self.primary.update_conversation(conversation_id, patch),
            lambda: self.fallback.update_conversation(conversation_id, patch),
        )

    # Messages

    async def list_messages(self, query: MessageQuery | None = None) -> list[MessageRecord]:
        query = query or MessageQuery()
        return await self._run_merged(
            "list_messages",
            lambda: self.primary.list_messages(query),
            lambda: self.fallback.list_messages(query),
            lambda ids: self.primary.list_messages(MessageQuery(ids=ids)),
            sort_messages,
        )

    async def create_message(self, record: MessageRecord) -> MessageRecord:
        return await self._run(
            "create_message",
            lambda: self.primary.create_message(record),
            lambda: self.fallback.create_message(record),
        )

    async def update_message(self, message_id: str, patch: dict[str, Any]) -> MessageRecord | None:
        return await self._run_lookup(
            "update_message",
            lambda: self.primary.update_message(message_id, patch),
            lambda: self.fallback.update_message(message_id, patch),
        )


def build_repository(settings_provider: Callable[[], Settings] = load_settings) -> ChatRepository:
    """Wire the primary and fallback stores from settings."""
    return ChatRepository(
        primary=SqlChatStore(settings_provider),
        fallback=JsonFileChatStore(settings_provider),
    )


async def _first(records: Awaitable[list[T]]) -> T | None:
    found = await records
    return found[0] if found else None
