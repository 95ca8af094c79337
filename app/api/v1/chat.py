"""Chat API endpoints - conversations, messages, read state and push stream."""

import logging
from collections.abc import AsyncIterator
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import StreamingResponse

from app.api.deps import (
    get_caller,
    get_message_processor,
    get_push_broker,
    get_repository,
    require_console_caller,
)
from app.config import Settings, get_settings
from app.models import ConversationStatus, SenderRole
from app.schemas.auth import Caller
from app.schemas.chat import (
    ConversationCreate,
    ConversationFilter,
    ConversationListResponse,
    ConversationResponse,
    ConversationUpdate,
    MarkReadRequest,
    MarkReadResponse,
    MessageCreate,
    MessageCreateResult,
    MessageListResponse,
    UnreadCountResponse,
    WhatsAppLinkResponse,
)
from app.services import conversation as conversation_service
from app.services import permissions, read_state
from app.services.message_processor import InboundMessageProcessor
from app.services.push import CONVERSATIONS_TOPIC, PushBroker, Subscription, conversation_topic
from app.services.storage import ChatRepository
from app.services.whatsapp import contact_link

router = APIRouter(prefix="/chat", tags=["chat"])
logger = logging.getLogger(__name__)


@router.get(
    "/conversations",
    response_model=ConversationListResponse,
    summary="List conversations",
)
async def list_conversations(
    caller: Annotated[Caller, Depends(get_caller)],
    repo: Annotated[ChatRepository, Depends(get_repository)],
    status_filter: Annotated[
        ConversationStatus | Literal["all"], Query(alias="status")
    ] = ConversationStatus.ACTIVE,
    assigned_to: Annotated[str | None, Query()] = None,
) -> ConversationListResponse:
    """List conversations visible to the caller, most recent activity first."""
    conversations = await conversation_service.list_conversations(
        repo, ConversationFilter(status=status_filter, assigned_to=assigned_to), caller
    )
    return ConversationListResponse(data=conversations)


@router.post(
    "/conversations",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a conversation",
)
async def create_conversation(
    data: ConversationCreate,
    response: Response,
    caller: Annotated[Caller, Depends(get_caller)],
    repo: Annotated[ChatRepository, Depends(get_repository)],
    push: Annotated[PushBroker, Depends(get_push_broker)],
) -> ConversationResponse:
    """Open a conversation, or return the customer's existing one (200)."""
    if caller.is_customer and caller.id is not None:
        data = data.model_copy(update={"customer_ref": caller.id})

    conversation, created = await conversation_service.create_conversation(repo, data, push)
    if not created:
        response.status_code = status.HTTP_200_OK
    return ConversationResponse(data=conversation)


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationResponse,
    summary="Get conversation by ID",
)
async def get_conversation(
    conversation_id: str,
    caller: Annotated[Caller, Depends(get_caller)],
    repo: Annotated[ChatRepository, Depends(get_repository)],
) -> ConversationResponse:
    """Get conversation details."""
    conversation = await conversation_service.get_conversation(repo, conversation_id, caller)
    return ConversationResponse(data=conversation)


@router.patch(
    "/conversations/{conversation_id}",
    response_model=ConversationResponse,
    summary="Update conversation",
)
async def update_conversation(
    conversation_id: str,
    data: ConversationUpdate,
    caller: Annotated[Caller, Depends(get_caller)],
    repo: Annotated[ChatRepository, Depends(get_repository)],
) -> ConversationResponse:
    """Change status, assignment or contact details."""
    conversation = await conversation_service.update_conversation(
        repo, conversation_id, data, caller
    )
    return ConversationResponse(data=conversation)


@router.get(
    "/messages",
    response_model=MessageListResponse,
    summary="List messages of a conversation",
)
async def list_messages(
    caller: Annotated[Caller, Depends(get_caller)],
    repo: Annotated[ChatRepository, Depends(get_repository)],
    conversation_id: Annotated[str, Query()],
) -> MessageListResponse:
    """Messages ordered by creation time, oldest first."""
    messages = await conversation_service.list_messages(repo, conversation_id, caller)
    return MessageListResponse(data=messages)


@router.post(
    "/messages",
    response_model=MessageCreateResult,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def create_message(
    data: MessageCreate,
    caller: Annotated[Caller, Depends(get_caller)],
    processor: Annotated[InboundMessageProcessor, Depends(get_message_processor)],
) -> MessageCreateResult:
    """Send a message; the response says whether a welcome went out or the name changed."""
    if caller.id is not None and (caller.is_customer or data.sender_ref is None):
        data = data.model_copy(update={"sender_ref": caller.id})
    if caller.is_customer and data.sender_role != SenderRole.CUSTOMER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customers can only send customer messages",
        )
    return await processor.create_message(data, caller)


@router.put(
    "/messages/read",
    response_model=MarkReadResponse,
    summary="Mark messages as read",
)
async def mark_messages_read(
    data: MarkReadRequest,
    caller: Annotated[Caller, Depends(require_console_caller)],
    repo: Annotated[ChatRepository, Depends(get_repository)],
) -> MarkReadResponse:
    """Mark a conversation's unread customer messages (optionally a subset) as read."""
    if data.conversation_id:
        await conversation_service.get_conversation(repo, data.conversation_id, caller)
    updated = await read_state.mark_read(repo, data.conversation_id, data.message_ids)
    return MarkReadResponse(updated=updated)


@router.get(
    "/unread-count",
    response_model=UnreadCountResponse,
    summary="Unread customer messages for the console badge",
)
async def get_unread_count(
    caller: Annotated[Caller, Depends(get_caller)],
    repo: Annotated[ChatRepository, Depends(get_repository)],
) -> UnreadCountResponse:
    """Admins count all active conversations, staff only their assigned ones."""
    count = await read_state.count_unread(repo, caller)
    return UnreadCountResponse(count=count)


@router.get(
    "/whatsapp-link",
    response_model=WhatsAppLinkResponse,
    summary="WhatsApp click-to-chat link",
)
async def get_whatsapp_link(
    settings: Annotated[Settings, Depends(get_settings)],
) -> WhatsAppLinkResponse:
    """Deep link to the support WhatsApp number with a prefilled greeting."""
    return WhatsAppLinkResponse(url=contact_link(settings))


@router.get("/stream", summary="Live push of new messages or conversations (SSE)")
async def stream_events(
    request: Request,
    caller: Annotated[Caller, Depends(get_caller)],
    repo: Annotated[ChatRepository, Depends(get_repository)],
    push: Annotated[PushBroker, Depends(get_push_broker)],
    settings: Annotated[Settings, Depends(get_settings)],
    conversation_id: Annotated[str | None, Query()] = None,
) -> StreamingResponse:
    """Server-Sent Events stream.

    With a conversation_id this streams that conversation's new messages;
    without one it streams newly opened conversations (console only).
    The stream is a best-effort hint: clients must keep polling.
    """
    if conversation_id:
        await conversation_service.get_conversation(repo, conversation_id, caller)
        topic = conversation_topic(conversation_id)
        event_name = "message"
    else:
        if caller.is_customer:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Staff or admin access required",
            )
        topic = CONVERSATIONS_TOPIC
        event_name = "conversation"

    subscription = push.subscribe(topic)
    return StreamingResponse(
        _sse_events(request, subscription, caller, event_name, settings.push_heartbeat_seconds),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def _sse_events(
    request: Request,
    subscription: Subscription,
    caller: Caller,
    event_name: str,
    heartbeat_seconds: float,
) -> AsyncIterator[str]:
    try:
        yield ": connected\n\n"
        while not await request.is_disconnected():
            record = await subscription.get(timeout=heartbeat_seconds)
            if record is None:
                yield ": heartbeat\n\n"
                continue
            if event_name == "conversation" and not permissions.can_view_conversation(caller, record):
                continue
            yield f"event: {event_name}\ndata: {record.model_dump_json()}\n\n"
    finally:
        subscription.close()
        logger.debug(f"Push stream on {subscription.topic} closed")
