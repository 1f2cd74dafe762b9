"""Tiered conversation memory and chat persistence."""

from .models import (
    Message,
    MessageRole,
    ImportantMessage,
    ImportanceReason,
    ConversationChunk,
    MemoryRecord,
    MemoryStatus,
)
from .kv_store import KeyValueStore, InMemoryKeyValueStore, StorageError
from .sqlite_store import SQLiteKeyValueStore
from .chat_memory import ChatMemory
from .chat_history import ChatHistoryStore, ChatTranscript, ChatSummary

__all__ = [
    "Message",
    "MessageRole",
    "ImportantMessage",
    "ImportanceReason",
    "ConversationChunk",
    "MemoryRecord",
    "MemoryStatus",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "StorageError",
    "SQLiteKeyValueStore",
    "ChatMemory",
    "ChatHistoryStore",
    "ChatTranscript",
    "ChatSummary",
]
