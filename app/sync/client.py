"""HTTP client for the chat API, used by the client-side sync engine."""

import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx
from pydantic import BaseModel

from app.schemas.chat import (
    ConversationCreate,
    ConversationRecord,
    ConversationSummary,
    ConversationUpdate,
    MessageCreate,
    MessageCreateResult,
    MessageRecord,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/chat"


class ChatSource(Protocol):
    """What the views need from a chat backend."""

    async def list_conversations(
        self, status: str = "active", assigned_to: str | None = None
    ) -> list[ConversationSummary]: ...

    async def list_messages(self, conversation_id: str) -> list[MessageRecord]: ...

    async def mark_read(self, conversation_id: str, message_ids: list[str] | None = None) -> int: ...

    async def unread_count(self) -> int: ...

    def stream(self, conversation_id: str | None = None) -> AsyncIterator[BaseModel]: ...


def parse_sse_event(event: str | None, data: str) -> BaseModel | None:
    """Turn one Server-Sent Event into a record, or None for unknown events."""
    if event == "message":
        return MessageRecord.model_validate_json(data)
    if event == "conversation":
        return ConversationRecord.model_validate_json(data)
    logger.debug(f"Ignoring push event {event!r}")
    return None


class ChatApiClient:
    """Async client for the chat API.

    Non-2xx responses raise httpx.HTTPStatusError.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Root URL of the chat service
            token: Bearer token from the identity provider (None = guest)
            timeout: Request timeout in seconds (the push stream has none)
            transport: Optional httpx transport (ASGI app in tests)
        """
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        response = await self.client.request(method, f"{API_PREFIX}{path}", **kwargs)
        response.raise_for_status()
        return response.json()

    # Conversations

    async def list_conversations(
        self, status: str = "active", assigned_to: str | None = None
    ) -> list[ConversationSummary]:
        params = {"status": status}
        if assigned_to:
            params["assigned_to"] = assigned_to
        body = await self._request("GET", "/conversations", params=params)
        return [ConversationSummary.model_validate(item) for item in body["data"]]

    async def create_conversation(self, data: ConversationCreate) -> ConversationRecord:
        body = await self._request(
            "POST", "/conversations", json=data.model_dump(mode="json", exclude_none=True)
        )
        return ConversationRecord.model_validate(body["data"])

    async def get_conversation(self, conversation_id: str) -> ConversationRecord:
        body = await self._request("GET", f"/conversations/{conversation_id}")
        return ConversationRecord.model_validate(body["data"])

    async def update_conversation(
        self, conversation_id: str, data: ConversationUpdate
    ) -> ConversationRecord:
        body = await self._request(
            "PATCH",
            f"/conversations/{conversation_id}",
            json=data.model_dump(mode="json", exclude_unset=True),
        )
        return ConversationRecord.model_validate(body["data"])

    # Messages

    async def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        body = await self._request("GET", "/messages", params={"conversation_id": conversation_id})
        return [MessageRecord.model_validate(item) for item in body["data"]]

    async def send_message(self, data: MessageCreate) -> MessageCreateResult:
        body = await self._request("POST", "/messages", json=data.model_dump(mode="json"))
        return MessageCreateResult.model_validate(body)

    async def mark_read(self, conversation_id: str, message_ids: list[str] | None = None) -> int:
        payload: dict[str, Any] = {"conversation_id": conversation_id}
        if message_ids is not None:
            payload["message_ids"] = message_ids
        body = await self._request("PUT", "/messages/read", json=payload)
        return body["updated"]

    async def unread_count(self) -> int:
        body = await self._request("GET", "/unread-count")
        return body["count"]

    async def whatsapp_link(self) -> str:
        body = await self._request("GET", "/whatsapp-link")
        return body["url"]

    # Push

    async def stream(self, conversation_id: str | None = None) -> AsyncIterator[BaseModel]:
        """Yield records pushed over the Server-Sent Events channel.

        Comment lines (connect and heartbeat) are skipped. The iterator ends
        when the server closes the stream.
        """
        params = {"conversation_id": conversation_id} if conversation_id else None
        async with self.client.stream(
            "GET", f"{API_PREFIX}/stream", params=params, timeout=None
        ) as response:
            response.raise_for_status()
            event: str | None = None
            data_lines: list[str] = []
            async for line in response.aiter_lines():
                if not line:
                    if data_lines:
                        record = parse_sse_event(event, "\n".join(data_lines))
                        if record is not None:
                            yield record
                    event, data_lines = None, []
                elif line.startswith(":"):
                    continue
                elif line.startswith("event:"):
                    event = line[len("event:"):].strip()
                elif line.startswith("data:"):
                    data_lines.append(line[len("data:"):].lstrip())
