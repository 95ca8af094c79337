"""Tests for the inbound message processor."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from app.database import init_primary_schema
from app.models import ConversationStatus, MessageType, SenderRole
from app.schemas.auth import Caller
from app.schemas.chat import ConversationCreate, MessageCreate
from app.services import conversation as conversation_service
from app.services.errors import FallbackIOError, NotFoundError, ValidationError
from app.services.message_processor import InboundMessageProcessor
from app.services.push import PushBroker, conversation_topic
from app.services.storage import ChatRepository, MessageQuery, build_repository
from tests.conftest import make_settings
from tests.factories import make_conversation, make_message

pytestmark = pytest.mark.asyncio


async def open_guest_conversation(repo: ChatRepository, name: str = "Guest"):
    conversation, _ = await conversation_service.create_conversation(
        repo, ConversationCreate(customer_name=name)
    )
    return conversation


def customer_says(conversation_id: str, content: str, name: str = "Guest") -> MessageCreate:
    return MessageCreate(conversation_id=conversation_id, sender_name=name, content=content)


class TestValidation:
    """Required input is rejected before anything is stored."""

    @pytest.mark.parametrize(
        "missing,payload",
        [
            ("conversation_id", {"sender_name": "Guest", "content": "Hi"}),
            ("sender_name", {"conversation_id": "conv_1", "content": "Hi"}),
            ("content", {"conversation_id": "conv_1", "sender_name": "Guest", "content": "  "}),
        ],
    )
    async def test_missing_field(self, processor: InboundMessageProcessor, fallback_repo, missing, payload):
        with pytest.raises(ValidationError) as exc_info:
            await processor.create_message(MessageCreate(**payload))

        assert exc_info.value.field == missing
        assert await fallback_repo.list_messages() == []

    async def test_unknown_conversation(self, processor: InboundMessageProcessor, fallback_repo):
        with pytest.raises(NotFoundError):
            await processor.create_message(customer_says("conv_missing", "Hi"))

        assert await fallback_repo.list_messages() == []

    async def test_invisible_conversation_looks_missing(
        self, processor: InboundMessageProcessor, fallback_repo, customer: Caller
    ):
        other = await fallback_repo.create_conversation(
            make_conversation(customer_ref="someone_else", customer_name="Nimal")
        )

        with pytest.raises(NotFoundError):
            await processor.create_message(customer_says(other.id, "Hi"), customer)


class TestFirstContact:
    """Welcome message and ordering of the first exchange."""

    async def test_guest_hi_stores_message_and_welcome(
        self, processor: InboundMessageProcessor, fallback_repo, settings
    ):
        conversation = await open_guest_conversation(fallback_repo)

        result = await processor.create_message(customer_says(conversation.id, "Hi"))

        messages = await fallback_repo.list_messages(MessageQuery(conversation_id=conversation.id))
        stored = await fallback_repo.get_conversation(conversation.id)
        assert result.welcome_sent is True
        assert result.data.conversation_id == conversation.id
        assert [m.content for m in messages] == ["Hi", settings.welcome_message]
        assert stored.status == ConversationStatus.ACTIVE.value

    async def test_welcome_is_system_message_after_trigger(
        self, processor: InboundMessageProcessor, fallback_repo, settings
    ):
        conversation = await open_guest_conversation(fallback_repo)

        result = await processor.create_message(customer_says(conversation.id, "Hi"))

        welcome = (await fallback_repo.list_messages(MessageQuery(conversation_id=conversation.id)))[-1]
        assert welcome.sender_role == SenderRole.ADMIN.value
        assert welcome.message_type == MessageType.SYSTEM.value
        assert welcome.sender_name == settings.welcome_sender_name
        assert welcome.sender_ref is None
        assert welcome.created_at > result.data.created_at

    async def test_second_customer_message_gets_no_welcome(
        self, processor: InboundMessageProcessor, fallback_repo
    ):
        conversation = await open_guest_conversation(fallback_repo)
        await processor.create_message(customer_says(conversation.id, "Hi"))

        result = await processor.create_message(customer_says(conversation.id, "Are you there?"))

        messages = await fallback_repo.list_messages(MessageQuery(conversation_id=conversation.id))
        assert result.welcome_sent is False
        assert sum(m.message_type == MessageType.SYSTEM.value for m in messages) == 1

    async def test_staff_message_never_triggers_welcome(
        self, processor: InboundMessageProcessor, fallback_repo
    ):
        conversation = await open_guest_conversation(fallback_repo)

        result = await processor.create_message(
            MessageCreate(
                conversation_id=conversation.id,
                sender_ref="staff_1",
                sender_name="Nadeesha",
                sender_role=SenderRole.STAFF,
                content="Hello! How can we help?",
            )
        )

        assert result.welcome_sent is False

    async def test_welcome_failure_does_not_block_message(
        self, processor: InboundMessageProcessor, fallback_repo
    ):
        conversation = await open_guest_conversation(fallback_repo)

        with patch.object(
            InboundMessageProcessor, "_send_welcome", AsyncMock(side_effect=RuntimeError("boom"))
        ):
            result = await processor.create_message(customer_says(conversation.id, "Hi"))

        messages = await fallback_repo.list_messages(MessageQuery(conversation_id=conversation.id))
        assert result.welcome_sent is False
        assert [m.content for m in messages] == ["Hi"]


class TestOrdering:
    """created_at never goes backwards within a conversation."""

    async def test_created_at_not_before_latest_stored(self, processor: InboundMessageProcessor, fallback_repo):
        conversation = await open_guest_conversation(fallback_repo, name="Kasun")
        future = datetime.now(timezone.utc) + timedelta(minutes=5)
        await fallback_repo.create_message(
            make_message(conversation.id, sender_role=SenderRole.STAFF, created_at=future)
        )

        previous = await fallback_repo.list_messages(MessageQuery(conversation_id=conversation.id))

        result = await processor.create_message(customer_says(conversation.id, "Hi", name="Kasun"))

        assert all(result.data.created_at >= m.created_at for m in previous)

    async def test_last_message_at_follows_latest_message(self, processor: InboundMessageProcessor, fallback_repo):
        conversation = await open_guest_conversation(fallback_repo)

        await processor.create_message(customer_says(conversation.id, "Hi"))

        messages = await fallback_repo.list_messages(MessageQuery(conversation_id=conversation.id))
        stored = await fallback_repo.get_conversation(conversation.id)
        assert stored.last_message_at == messages[-1].created_at


class TestReopen:
    """Any new message reactivates a closed conversation."""

    async def test_message_reopens_closed_conversation(
        self, processor: InboundMessageProcessor, fallback_repo, admin: Caller
    ):
        conversation = await open_guest_conversation(fallback_repo)
        await conversation_service.close_conversation(fallback_repo, conversation.id, admin)

        await processor.create_message(customer_says(conversation.id, "One more question"))

        stored = await fallback_repo.get_conversation(conversation.id)
        assert stored.status == ConversationStatus.ACTIVE.value

    async def test_archived_conversation_stays_archived(
        self, processor: InboundMessageProcessor, fallback_repo, admin: Caller
    ):
        conversation = await open_guest_conversation(fallback_repo)
        await conversation_service.archive_conversation(fallback_repo, conversation.id, admin)

        result = await processor.create_message(customer_says(conversation.id, "Hello?"))

        stored = await fallback_repo.get_conversation(conversation.id)
        assert result.data.content == "Hello?"
        assert stored.status == ConversationStatus.ARCHIVED.value


class TestNameCapture:
    """Customer name extraction during message creation."""

    async def test_bare_name_after_welcome_prompt(self, processor: InboundMessageProcessor, fallback_repo):
        conversation = await open_guest_conversation(fallback_repo)
        await processor.create_message(customer_says(conversation.id, "Hi"))

        result = await processor.create_message(customer_says(conversation.id, "Kasun"))

        stored = await fallback_repo.get_conversation(conversation.id)
        assert result.name_updated is True
        assert stored.customer_name == "Kasun"

    async def test_lowercase_bare_name_is_ignored(self, processor: InboundMessageProcessor, fallback_repo):
        conversation = await open_guest_conversation(fallback_repo)
        await processor.create_message(customer_says(conversation.id, "Hi"))

        result = await processor.create_message(customer_says(conversation.id, "kasun"))

        stored = await fallback_repo.get_conversation(conversation.id)
        assert result.name_updated is False
        assert stored.customer_name == "Guest"

    async def test_explicit_phrase_on_first_message(self, processor: InboundMessageProcessor, fallback_repo):
        conversation = await open_guest_conversation(fallback_repo, name="Guest_4821")

        result = await processor.create_message(
            customer_says(conversation.id, "My name is Dilani Perera.")
        )

        stored = await fallback_repo.get_conversation(conversation.id)
        assert result.welcome_sent is True
        assert result.name_updated is True
        assert stored.customer_name == "Dilani Perera"

    async def test_known_name_is_not_overwritten_without_prompt(
        self, processor: InboundMessageProcessor, fallback_repo
    ):
        conversation = await open_guest_conversation(fallback_repo, name="Kasun Silva")
        await fallback_repo.create_message(make_message(conversation.id, content="Hi"))

        result = await processor.create_message(customer_says(conversation.id, "I am Nimal"))

        stored = await fallback_repo.get_conversation(conversation.id)
        assert result.name_updated is False
        assert stored.customer_name == "Kasun Silva"

    async def test_staff_messages_are_never_parsed(self, processor: InboundMessageProcessor, fallback_repo):
        conversation = await open_guest_conversation(fallback_repo)

        result = await processor.create_message(
            MessageCreate(
                conversation_id=conversation.id,
                sender_name="Nadeesha",
                sender_role=SenderRole.STAFF,
                content="Hi, this is Nadeesha",
            )
        )

        assert result.name_updated is False

    async def test_extraction_failure_is_swallowed(self, processor: InboundMessageProcessor, fallback_repo):
        conversation = await open_guest_conversation(fallback_repo)

        with patch(
            "app.services.message_processor.extract_customer_name",
            side_effect=RuntimeError("bad rule"),
        ):
            result = await processor.create_message(customer_says(conversation.id, "I'm Kasun"))

        assert result.name_updated is False
        assert result.data.content == "I'm Kasun"


class TestSideEffects:
    """Push notification and metadata update failures."""

    async def test_messages_are_pushed(
        self, processor: InboundMessageProcessor, fallback_repo, broker: PushBroker
    ):
        conversation = await open_guest_conversation(fallback_repo)
        subscription = broker.subscribe(conversation_topic(conversation.id))

        await processor.create_message(customer_says(conversation.id, "Hi"))

        first = await subscription.get(timeout=1)
        second = await subscription.get(timeout=1)
        assert first.content == "Hi"
        assert second.message_type == MessageType.SYSTEM.value

    async def test_metadata_update_failure_keeps_message(
        self, processor: InboundMessageProcessor, fallback_repo
    ):
        conversation = await open_guest_conversation(fallback_repo)
        real_update = fallback_repo.update_conversation

        async def failing_update(conversation_id, patch):
            if "last_message_at" in patch:
                raise FallbackIOError("conversations.json", "not writable")
            return await real_update(conversation_id, patch)

        with patch.object(fallback_repo, "update_conversation", side_effect=failing_update):
            result = await processor.create_message(customer_says(conversation.id, "Hi"))

        assert result.data.content == "Hi"
        assert result.name_updated is False


class TestPrimaryRecovery:
    """Conversations opened while the primary store was unavailable."""

    async def test_mirror_history_counts_after_primary_returns(
        self, data_dir, primary_url: str, broker: PushBroker
    ):
        current = {"settings": make_settings(data_dir)}
        repo = build_repository(lambda: current["settings"])
        processor = InboundMessageProcessor(repo, settings=current["settings"], push=broker)
        conversation = await open_guest_conversation(repo)
        await processor.create_message(customer_says(conversation.id, "Hi"))

        await init_primary_schema(primary_url)
        current["settings"] = make_settings(data_dir, primary_url)
        result = await processor.create_message(customer_says(conversation.id, "Are you there?"))

        messages = await repo.list_messages(MessageQuery(conversation_id=conversation.id))
        assert result.welcome_sent is False
        assert messages[0].content == "Hi"
        assert messages[-1].id == result.data.id
        assert sum(m.message_type == MessageType.SYSTEM.value for m in messages) == 1

        mirror = await repo.fallback.list_messages(MessageQuery(conversation_id=conversation.id))
        assert result.data.id in {m.id for m in mirror}
