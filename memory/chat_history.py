"""Chat transcript persistence over the key-value store."""

import logging
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, ValidationError

from .heuristics import truncate
from .kv_store import KeyValueStore
from .models import Message, MessageRole

logger = logging.getLogger(__name__)


class ChatTranscript(BaseModel):
    """Stored chat: title plus the full message list."""
    chat_id: str
    title: str = "New Chat"
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    messages: List[Message] = Field(default_factory=list)


class ChatSummary(BaseModel):
    """Chat list entry for sidebars."""
    chat_id: str
    title: str
    updated_at: datetime
    message_count: int = 0


class ChatHistoryStore:
    """Stores full chat transcripts, separate from compacted memory."""

    KEY_PREFIX = "chat_history_"
    DEFAULT_TITLE = "New Chat"
    MAX_TITLE_CHARS = 30

    def __init__(self, store: KeyValueStore):
        """
        Initialize chat history store.

        Args:
            store: Key-value store shared with ChatMemory
        """
        self.store = store

    def _key(self, chat_id: str) -> str:
        return f"{self.KEY_PREFIX}{chat_id}"

    def _load(self, chat_id: str) -> Optional[ChatTranscript]:
        try:
            stored = self.store.get(self._key(chat_id))
            if not stored:
                return None
            return ChatTranscript.model_validate_json(stored)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Ignoring corrupted chat transcript {chat_id}: {e}")
            return None

    def _save(self, transcript: ChatTranscript):
        self.store.set(self._key(transcript.chat_id), transcript.model_dump_json())

    @classmethod
    def title_from_messages(cls, messages: List[Message]) -> str:
        """Derive a chat title from the first user message."""
        for msg in messages:
            if msg.role == MessageRole.USER and msg.content.strip():
                return truncate(msg.content.strip(), cls.MAX_TITLE_CHARS)
        return cls.DEFAULT_TITLE

    def save_messages(self, chat_id: str, messages: List[Message]) -> ChatTranscript:
        """
        Replace the stored messages of a chat.

        A chat still carrying the default title is retitled from its first
        user message.

        Args:
            chat_id: Chat ID
            messages: Full message list, oldest first

        Returns:
            The stored transcript
        """
        transcript = self._load(chat_id) or ChatTranscript(chat_id=chat_id)
        transcript.messages = list(messages)
        transcript.updated_at = datetime.now()
        if transcript.title == self.DEFAULT_TITLE:
            transcript.title = self.title_from_messages(transcript.messages)

        self._save(transcript)
        return transcript

    def load_messages(self, chat_id: str) -> List[Message]:
        """Messages of a chat, or an empty list if unknown."""
        transcript = self._load(chat_id)
        return list(transcript.messages) if transcript else []

    def list_chats(self) -> List[ChatSummary]:
        """
        List stored chats, most recently updated first.

        Returns:
            List of ChatSummary objects (without messages)
        """
        chats = []
        for key in self.store.list_keys(self.KEY_PREFIX):
            transcript = self._load(key[len(self.KEY_PREFIX):])
            if not transcript:
                continue
            chats.append(ChatSummary(
                chat_id=transcript.chat_id,
                title=transcript.title,
                updated_at=transcript.updated_at,
                message_count=len(transcript.messages)
            ))

        chats.sort(key=lambda chat: chat.updated_at, reverse=True)
        return chats

    def rename_chat(self, chat_id: str, title: str) -> bool:
        """Set a chat title. Returns False if the chat does not exist."""
        transcript = self._load(chat_id)
        if not transcript:
            return False

        transcript.title = title.strip() or self.DEFAULT_TITLE
        self._save(transcript)
        return True

    def delete_chat(self, chat_id: str):
        """Delete a chat transcript."""
        self.store.remove(self._key(chat_id))
