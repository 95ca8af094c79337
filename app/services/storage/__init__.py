"""Dual-backend persistence for conversations and messages."""

from app.services.storage.fallback import JsonFileChatStore
from app.services.storage.primary import SqlChatStore
from app.services.storage.queries import ConversationQuery, MessageQuery
from app.services.storage.repository import ChatRepository, ChatStore, build_repository

__all__ = [
    "ChatRepository",
    "ChatStore",
    "ConversationQuery",
    "JsonFileChatStore",
    "MessageQuery",
    "SqlChatStore",
    "build_repository",
]
