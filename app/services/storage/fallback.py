"""Fallback chat store - JSON array files on local disk.

Each collection lives in its own file and is rewritten in full on every
mutation (read-modify-write, no locking). Concurrent writers in degraded mode
can lose updates; that is accepted for this path.
"""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.config import Settings, load_settings
from app.schemas.chat import ConversationRecord, MessageRecord
from app.services.errors import FallbackIOError
from app.services.storage.queries import (
    ConversationQuery,
    MessageQuery,
    sort_conversations,
    sort_messages,
)

logger = logging.getLogger(__name__)

CONVERSATIONS_FILE = "conversations.json"
MESSAGES_FILE = "messages.json"

RecordT = TypeVar("RecordT", bound=BaseModel)


class JsonCollection(Generic[RecordT]):
    """One JSON array of records on disk."""

    def __init__(self, path: Path, model: type[RecordT]):
        self.path = path
        self._adapter = TypeAdapter(list[model])

    def load(self) -> list[RecordT]:
        """Read every record; a missing file is an empty collection."""
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise FallbackIOError(str(self.path), f"unreadable: {e}") from e
        if not raw.strip():
            return []
        try:
            return self._adapter.validate_json(raw)
        except PydanticValidationError as e:
            raise FallbackIOError(str(self.path), f"corrupt: {e.error_count()} invalid entries") from e

    def save(self, records: list[RecordT]) -> None:
        """Rewrite the whole collection."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(self._adapter.dump_json(records, indent=2))
        except OSError as e:
            raise FallbackIOError(str(self.path), f"not writable: {e}") from e

    def append(self, record: RecordT) -> RecordT:
        records = self.load()
        records.append(record)
        self.save(records)
        return record

    def replace(self, record_id: str, patch: dict[str, Any]) -> RecordT | None:
        """Apply a patch to the record with this id; None if there is none."""
        records = self.load()
        for index, record in enumerate(records):
            if getattr(record, "id") == record_id:
                updated = record.model_validate({**record.model_dump(), **patch})
                records[index] = updated
                self.save(records)
                return updated
        return None


class JsonFileChatStore:
    """Conversations and messages mirrored to local JSON files."""

    name = "fallback"

    def __init__(self, settings_provider: Callable[[], Settings] = load_settings):
        self._settings_provider = settings_provider

    @property
    def data_dir(self) -> Path:
        return Path(self._settings_provider().chat_data_dir)

    @property
    def conversations(self) -> JsonCollection[ConversationRecord]:
        return JsonCollection(self.data_dir / CONVERSATIONS_FILE, ConversationRecord)

    @property
    def messages(self) -> JsonCollection[MessageRecord]:
        return JsonCollection(self.data_dir / MESSAGES_FILE, MessageRecord)

    # Conversations

    async def list_conversations(self, query: ConversationQuery) -> list[ConversationRecord]:
        return sort_conversations([c for c in self.conversations.load() if query.matches(c)])

    async def create_conversation(self, record: ConversationRecord) -> ConversationRecord:
        return self.conversations.append(record)

    async def update_conversation(
        self, conversation_id: str, patch: dict[str, Any]
    ) -> ConversationRecord | None:
        return self.conversations.replace(conversation_id, patch)

    # Messages

    async def list_messages(self, query: MessageQuery) -> list[MessageRecord]:
        return sort_messages([m for m in self.messages.load() if query.matches(m)])

    async def create_message(self, record: MessageRecord) -> MessageRecord:
        return self.messages.append(record)

    async def update_message(self, message_id: str, patch: dict[str, Any]) -> MessageRecord | None:
        return self.messages.replace(message_id, patch)
