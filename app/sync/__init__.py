"""Client-side sync engine: pollers, snapshot reconciliation and views."""

from app.sync.client import ChatApiClient, ChatSource, parse_sse_event
from app.sync.diff import (
    merge_pushed_conversation,
    merge_pushed_message,
    reconcile_conversations,
    reconcile_messages,
)
from app.sync.poller import Poller
from app.sync.views import (
    ConversationListView,
    ConversationView,
    UnreadBadgeView,
    ViewResources,
)

__all__ = [
    "ChatApiClient",
    "ChatSource",
    "parse_sse_event",
    "Poller",
    "reconcile_messages",
    "reconcile_conversations",
    "merge_pushed_message",
    "merge_pushed_conversation",
    "ViewResources",
    "ConversationView",
    "ConversationListView",
    "UnreadBadgeView",
]
