"""Inbound message processing - runs synchronously inside message creation.

Steps, in order:
1. Validate required input (nothing is persisted on failure)
2. Resolve the conversation
3. Reopen it if it was closed
4. Decide whether this is the customer's first message (welcome)
5. Try to capture the customer's name
6. Persist the message, then the welcome message
7. Update the conversation's name and activity timestamps

Steps 4-5 and the welcome write are heuristics: any failure there is logged
and swallowed, the customer's message is still stored. Nothing here runs in a
cross-entity transaction, so readers may briefly see a message whose
conversation has not had last_message_at bumped yet.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

from app.config import Settings, get_settings
from app.models import ConversationStatus, MessageType, SenderRole
from app.schemas.auth import Caller
from app.schemas.chat import (
    ConversationRecord,
    MessageCreate,
    MessageCreateResult,
    MessageRecord,
)
from app.services import conversation as conversation_service
from app.services.errors import FallbackIOError, HeuristicFailure, ValidationError
from app.services.name_extraction import extract_customer_name, is_generic_name, is_name_prompt
from app.services.push import PushBroker, conversation_topic
from app.services.storage import ChatRepository, MessageQuery
from app.utils.ids import generate_id

logger = logging.getLogger(__name__)

# Minimum gap that keeps the welcome message strictly after its trigger
WELCOME_OFFSET = timedelta(milliseconds=1)


@contextmanager
def heuristic(stage: str) -> Iterator[None]:
    """Swallow and log any failure inside a first-contact heuristic."""
    try:
        yield
    except Exception as e:
        failure = HeuristicFailure(stage, e)
        logger.warning(f"Heuristic failure ignored: {failure}", exc_info=True)


class InboundMessageProcessor:
    """Creates messages and runs first-contact automation."""

    def __init__(
        self,
        repo: ChatRepository,
        settings: Settings | None = None,
        push: PushBroker | None = None,
    ):
        """Initialize the processor.

        Args:
            repo: Dual-backend chat repository
            settings: Settings for the welcome text (cached settings if not provided)
            push: Optional push broker notified of every stored message
        """
        self.repo = repo
        self.settings = settings or get_settings()
        self.push = push

    async def create_message(
        self, data: MessageCreate, caller: Caller | None = None
    ) -> MessageCreateResult:
        """Store a message and run the inbound pipeline.

        Args:
            data: Message fields
            caller: Identity of the sender, used for visibility checks

        Returns:
            The stored message plus welcome_sent / name_updated flags
        """
        for field in ("conversation_id", "sender_name", "content"):
            value = getattr(data, field)
            if value is None or not str(value).strip():
                raise ValidationError(field)

        conversation = await conversation_service.get_conversation(
            self.repo, data.conversation_id, caller
        )
        conversation = await conversation_service.reopen_if_closed(self.repo, conversation)

        history = await self.repo.list_messages(MessageQuery(conversation_id=conversation.id))
        is_customer = data.sender_role == SenderRole.CUSTOMER

        send_welcome = False
        with heuristic("welcome_check"):
            send_welcome = is_customer and self._is_first_customer_message(history)
            if send_welcome:
                logger.info(f"First customer message in {conversation.id}, will send welcome")

        extracted_name: str | None = None
        with heuristic("name_extraction"):
            if is_customer:
                extracted_name = self._extract_name(conversation, history, data.content)
                if extracted_name:
                    logger.info(
                        f"Extracted customer name {extracted_name!r} for {conversation.id}"
                    )

        message = await self.repo.create_message(
            MessageRecord(
                id=generate_id("msg"),
                conversation_id=conversation.id,
                sender_ref=data.sender_ref,
                sender_name=data.sender_name.strip(),
                sender_role=data.sender_role,
                content=data.content,
                message_type=data.message_type,
                created_at=self._next_timestamp(history),
            )
        )
        self._publish(message)

        welcome_sent = False
        latest = message
        if send_welcome:
            with heuristic("welcome_dispatch"):
                welcome = await self._send_welcome(message)
                welcome_sent = True
                latest = welcome

        name_updated = await self._update_conversation(conversation, latest, extracted_name)

        return MessageCreateResult(
            data=message,
            welcome_sent=welcome_sent,
            name_updated=name_updated,
        )

    @staticmethod
    def _is_first_customer_message(history: list[MessageRecord]) -> bool:
        return not any(m.sender_role == SenderRole.CUSTOMER.value for m in history)

    @staticmethod
    def _extract_name(
        conversation: ConversationRecord,
        history: list[MessageRecord],
        content: str,
    ) -> str | None:
        previous = history[-1] if history else None
        after_prompt = (
            previous is not None
            and previous.sender_role != SenderRole.CUSTOMER.value
            and is_name_prompt(previous.content)
        )
        if not (is_generic_name(conversation.customer_name) or after_prompt):
            return None
        name = extract_customer_name(content, after_prompt=after_prompt)
        if name == conversation.customer_name:
            return None
        return name

    @staticmethod
    def _next_timestamp(history: list[MessageRecord]) -> datetime:
        """Now, but never earlier than the latest stored message."""
        now = datetime.now(timezone.utc)
        if history and history[-1].created_at > now:
            return history[-1].created_at
        return now

    async def _send_welcome(self, trigger: MessageRecord) -> MessageRecord:
        created_at = max(datetime.now(timezone.utc), trigger.created_at + WELCOME_OFFSET)
        welcome = await self.repo.create_message(
            MessageRecord(
                id=generate_id("msg"),
                conversation_id=trigger.conversation_id,
                sender_ref=None,
                sender_name=self.settings.welcome_sender_name,
                sender_role=SenderRole.ADMIN,
                content=self.settings.welcome_message,
                message_type=MessageType.SYSTEM,
                created_at=created_at,
            )
        )
        self._publish(welcome)
        logger.info(f"Welcome message sent in {trigger.conversation_id}")
        return welcome

    async def _update_conversation(
        self,
        conversation: ConversationRecord,
        latest: MessageRecord,
        extracted_name: str | None,
    ) -> bool:
        """Bump activity timestamps and apply a captured name.

        The message is already stored at this point, so a failure here is
        logged and the call still succeeds.

        Returns:
            True if the customer name was changed
        """
        patch: dict[str, Any] = {
            "last_message_at": max(latest.created_at, conversation.last_message_at),
            "updated_at": datetime.now(timezone.utc),
        }
        if extracted_name:
            patch["customer_name"] = extracted_name

        try:
            updated = await self.repo.update_conversation(conversation.id, patch)
        except FallbackIOError:
            logger.exception(f"Failed to update conversation {conversation.id} after new message")
            return False

        if updated is None:
            logger.error(f"Conversation {conversation.id} vanished while storing a message")
            return False

        if updated.status == ConversationStatus.ARCHIVED.value:
            logger.info(f"Message stored on archived conversation {conversation.id}")
        return bool(extracted_name)

    def _publish(self, message: MessageRecord) -> None:
        if self.push is not None:
            self.push.publish(conversation_topic(message.conversation_id), message)
