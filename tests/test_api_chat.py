"""End-to-end tests for the chat HTTP API."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.api.deps import get_repository
from app.api.v1.chat import _sse_events
from app.main import app
from app.models import ConversationStatus
from app.schemas.auth import Caller, CallerRole
from app.services.push import PushBroker, conversation_topic
from app.services.storage import ChatRepository, JsonFileChatStore
from app.utils.jwt import create_access_token
from tests.factories import make_conversation, make_message

pytestmark = pytest.mark.asyncio

API = "/api/v1/chat"


def auth(caller: Caller) -> dict[str, str]:
    token = create_access_token(caller.id, caller.name, caller.role)
    return {"Authorization": f"Bearer {token}"}


async def open_guest_conversation(client: httpx.AsyncClient) -> dict:
    response = await client.post(f"{API}/conversations", json={"customer_name": "Guest"})
    assert response.status_code == 201
    return response.json()["data"]


class TestGuestFlow:
    """A guest opens the widget and says hi."""

    async def test_hi_yields_message_plus_welcome(self, api_client: httpx.AsyncClient, settings):
        conversation = await open_guest_conversation(api_client)

        response = await api_client.post(
            f"{API}/messages",
            json={"conversation_id": conversation["id"], "sender_name": "Guest", "content": "Hi"},
        )
        messages = await api_client.get(f"{API}/messages", params={"conversation_id": conversation["id"]})
        detail = await api_client.get(f"{API}/conversations/{conversation['id']}")

        assert response.status_code == 201
        assert response.json()["welcome_sent"] is True
        assert [m["content"] for m in messages.json()["data"]] == ["Hi", settings.welcome_message]
        assert detail.json()["data"]["status"] == "active"

    async def test_name_reply_updates_conversation(self, api_client: httpx.AsyncClient):
        conversation = await open_guest_conversation(api_client)
        payload = {"conversation_id": conversation["id"], "sender_name": "Guest"}
        await api_client.post(f"{API}/messages", json={**payload, "content": "Hi"})

        response = await api_client.post(f"{API}/messages", json={**payload, "content": "Kasun"})
        detail = await api_client.get(f"{API}/conversations/{conversation['id']}")

        assert response.json()["name_updated"] is True
        assert detail.json()["data"]["customer_name"] == "Kasun"

    async def test_missing_content_is_400(self, api_client: httpx.AsyncClient):
        conversation = await open_guest_conversation(api_client)

        response = await api_client.post(
            f"{API}/messages", json={"conversation_id": conversation["id"], "sender_name": "Guest"}
        )

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "content is required", "field": "content"}

    async def test_missing_customer_name_is_400(self, api_client: httpx.AsyncClient):
        response = await api_client.post(f"{API}/conversations", json={})

        assert response.status_code == 400
        assert response.json()["field"] == "customer_name"

    async def test_unknown_conversation_is_404(self, api_client: httpx.AsyncClient):
        response = await api_client.post(
            f"{API}/messages",
            json={"conversation_id": "conv_missing", "sender_name": "Guest", "content": "Hi"},
        )

        assert response.status_code == 404
        assert response.json()["success"] is False

    async def test_guest_cannot_send_as_staff(self, api_client: httpx.AsyncClient):
        conversation = await open_guest_conversation(api_client)

        response = await api_client.post(
            f"{API}/messages",
            json={
                "conversation_id": conversation["id"],
                "sender_name": "Guest",
                "sender_role": "staff",
                "content": "Hi",
            },
        )

        assert response.status_code == 403


class TestCustomerIdentity:
    """Signed-in customers keep one conversation."""

    async def test_second_open_returns_existing_with_200(
        self, api_client: httpx.AsyncClient, customer: Caller
    ):
        first = await api_client.post(
            f"{API}/conversations", json={"customer_name": "Dilani"}, headers=auth(customer)
        )
        second = await api_client.post(
            f"{API}/conversations", json={"customer_name": "Dilani"}, headers=auth(customer)
        )

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["data"]["id"] == first.json()["data"]["id"]
        assert first.json()["data"]["customer_ref"] == customer.id

    async def test_invalid_token_is_401(self, api_client: httpx.AsyncClient):
        response = await api_client.get(
            f"{API}/conversations", headers={"Authorization": "Bearer not-a-token"}
        )

        assert response.status_code == 401


class TestConsole:
    """Staff and admin operations."""

    async def test_admin_lists_and_marks_read(
        self, api_client: httpx.AsyncClient, fallback_repo: ChatRepository, admin: Caller
    ):
        conversation = await fallback_repo.create_conversation(make_conversation())
        await fallback_repo.create_message(make_message(conversation.id))
        await fallback_repo.create_message(make_message(conversation.id))

        listed = await api_client.get(f"{API}/conversations", headers=auth(admin))
        before = await api_client.get(f"{API}/unread-count", headers=auth(admin))
        marked = await api_client.put(
            f"{API}/messages/read", json={"conversation_id": conversation.id}, headers=auth(admin)
        )
        after = await api_client.get(f"{API}/unread-count", headers=auth(admin))

        assert listed.json()["data"][0]["unread_count"] == 2
        assert before.json()["count"] == 2
        assert marked.json() == {"success": True, "updated": 2}
        assert after.json()["count"] == 0

    async def test_guest_cannot_mark_read(self, api_client: httpx.AsyncClient):
        conversation = await open_guest_conversation(api_client)

        response = await api_client.put(f"{API}/messages/read", json={"conversation_id": conversation["id"]})

        assert response.status_code == 403

    async def test_staff_sees_only_assigned(
        self, api_client: httpx.AsyncClient, fallback_repo: ChatRepository, staff: Caller
    ):
        mine = await fallback_repo.create_conversation(make_conversation(assigned_to=staff.id))
        other = await fallback_repo.create_conversation(make_conversation())

        listed = await api_client.get(f"{API}/conversations", headers=auth(staff))
        hidden = await api_client.get(f"{API}/conversations/{other.id}", headers=auth(staff))

        assert [c["id"] for c in listed.json()["data"]] == [mine.id]
        assert hidden.status_code == 404

    async def test_admin_assigns_and_staff_cannot_archive(
        self, api_client: httpx.AsyncClient, fallback_repo: ChatRepository, admin: Caller, staff: Caller
    ):
        conversation = await fallback_repo.create_conversation(make_conversation())

        assigned = await api_client.patch(
            f"{API}/conversations/{conversation.id}",
            json={"assigned_to": staff.id},
            headers=auth(admin),
        )
        archive = await api_client.patch(
            f"{API}/conversations/{conversation.id}",
            json={"status": "archived"},
            headers=auth(staff),
        )

        assert assigned.json()["data"]["assigned_to"] == staff.id
        assert archive.status_code == 400
        assert archive.json()["field"] == "status"

    async def test_status_filter_all(
        self, api_client: httpx.AsyncClient, fallback_repo: ChatRepository, admin: Caller
    ):
        await fallback_repo.create_conversation(make_conversation())
        await fallback_repo.create_conversation(make_conversation(status=ConversationStatus.CLOSED))

        active = await api_client.get(f"{API}/conversations", headers=auth(admin))
        everything = await api_client.get(f"{API}/conversations", params={"status": "all"}, headers=auth(admin))

        assert len(active.json()["data"]) == 1
        assert len(everything.json()["data"]) == 2


class TestDegradedMode:
    """The primary store failing is invisible to callers."""

    async def test_failing_primary_serves_mirror(
        self, api_client: httpx.AsyncClient, broken_primary_repo: ChatRepository, settings, admin: Caller
    ):
        stored = await JsonFileChatStore(lambda: settings).create_conversation(make_conversation())
        app.dependency_overrides[get_repository] = lambda: broken_primary_repo

        response = await api_client.get(f"{API}/conversations", headers=auth(admin))

        assert response.status_code == 200
        assert [c["id"] for c in response.json()["data"]] == [stored.id]

    async def test_corrupt_mirror_is_generic_500(self, api_client: httpx.AsyncClient, data_dir):
        data_dir.mkdir(parents=True)
        (data_dir / "conversations.json").write_text("[{broken")

        response = await api_client.post(f"{API}/conversations", json={"customer_name": "Guest"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Internal server error"}


class TestMisc:
    """Health and deep link endpoints."""

    async def test_health_reports_backend(self, api_client: httpx.AsyncClient):
        response = await api_client.get("/api/v1/health")

        assert response.json()["backend"] == "fallback"

    async def test_whatsapp_link(self, api_client: httpx.AsyncClient, settings):
        response = await api_client.get(f"{API}/whatsapp-link")

        url = response.json()["url"]
        assert url.startswith(f"https://wa.me/{settings.whatsapp_contact_number}?text=")
        assert " " not in url


class TestPushStream:
    """Server-Sent Events generator."""

    async def test_events_heartbeat_and_cleanup(self, broker: PushBroker):
        topic = conversation_topic("conv_1")
        subscription = broker.subscribe(topic)
        broker.publish(topic, make_message("conv_1", id="m1", content="Hi"))
        request = MagicMock()
        request.is_disconnected = AsyncMock(side_effect=[False, False, True])

        chunks = [
            chunk
            async for chunk in _sse_events(
                request, subscription, Caller(role=CallerRole.CUSTOMER), "message", 0.01
            )
        ]

        assert chunks[0] == ": connected\n\n"
        assert chunks[1].startswith("event: message\ndata: {")
        assert '"id":"m1"' in chunks[1]
        assert chunks[2] == ": heartbeat\n\n"
        assert broker.subscriber_count(topic) == 0

    async def test_conversation_events_respect_visibility(self, broker: PushBroker, staff: Caller):
        subscription = broker.subscribe("conversations")
        broker.publish("conversations", make_conversation(id="c_other", assigned_to="staff_2"))
        broker.publish("conversations", make_conversation(id="c_mine", assigned_to=staff.id))
        request = MagicMock()
        request.is_disconnected = AsyncMock(side_effect=[False, False, True])

        chunks = [
            chunk async for chunk in _sse_events(request, subscription, staff, "conversation", 0.01)
        ]

        assert len(chunks) == 2
        assert '"id":"c_mine"' in chunks[1]
