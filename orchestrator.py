"""Chat orchestrator: ties transcripts, chat memory and the LLM together."""

import uuid
import logging
from datetime import datetime
from typing import Optional, List, Iterator, Tuple

from config.settings import Settings

# LLM components
from llm.factory import create_llm_client
from llm.base_client import BaseLLMClient, Attachment, Message as LLMMessage

# Memory components
from memory.kv_store import KeyValueStore, InMemoryKeyValueStore
from memory.sqlite_store import SQLiteKeyValueStore
from memory.chat_memory import ChatMemory
from memory.chat_history import ChatHistoryStore, ChatSummary
from memory.models import Message, MessageRole, MemoryStatus

logger = logging.getLogger(__name__)


class ChatOrchestrator:
    """Runs chat turns with memory context injected into each request."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[KeyValueStore] = None,
        llm_client: Optional[BaseLLMClient] = None
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Application settings
            store: Key-value store (default: built from settings)
            llm_client: LLM client (default: built from settings)
        """
        self.settings = settings or Settings()

        self.store = store or self._init_store()
        self.memory = ChatMemory(self.store)
        self.history = ChatHistoryStore(self.store)

        self.llm_client: Optional[BaseLLMClient] = llm_client
        if self.llm_client is None:
            self._init_llm_client()

    def _init_store(self) -> KeyValueStore:
        """Create the key-value store named in settings."""
        if self.settings.storage_backend == "memory":
            logger.info("Using in-memory storage")
            return InMemoryKeyValueStore()

        store = SQLiteKeyValueStore(db_path=self.settings.db_path)
        logger.info(f"Memory initialized: {self.settings.db_path}")
        return store

    def _init_llm_client(self):
        """Initialize LLM client based on settings."""
        api_key = self.settings.get_llm_api_key()

        if not api_key:
            logger.warning(
                f"No API key for {self.settings.llm_provider}. "
                "Chat requests will fail until one is configured."
            )
            return

        try:
            self.llm_client = create_llm_client(
                provider=self.settings.llm_provider,
                api_key=api_key,
                model=self.settings.llm_model
            )
            logger.info(
                f"LLM client initialized: {self.settings.llm_provider} "
                f"({self.llm_client.get_model_name()})"
            )
        except Exception as e:
            logger.error(f"Failed to initialize LLM client: {e}")
            self.llm_client = None

    # --------- chats ----------

    def new_chat(self) -> str:
        """Return a fresh chat ID."""
        return str(uuid.uuid4())

    def list_chats(self) -> List[ChatSummary]:
        return self.history.list_chats()

    def load_messages(self, chat_id: str) -> List[Message]:
        return self.history.load_messages(chat_id)

    def rename_chat(self, chat_id: str, title: str) -> bool:
        return self.history.rename_chat(chat_id, title)

    def delete_chat(self, chat_id: str):
        """Delete a chat transcript together with its memory."""
        self.history.delete_chat(chat_id)
        self.memory.clear_memory(chat_id)
        logger.info(f"Deleted chat: {chat_id}")

    def memory_status(self, chat_id: str) -> MemoryStatus:
        return self.memory.get_memory_status(chat_id)

    def cleanup(self, max_age_days: Optional[int] = None) -> int:
        """Drop stale memory records (transcripts are kept)."""
        if max_age_days is None:
            max_age_days = self.settings.memory_retention_days
        return self.memory.cleanup_old_memories(max_age_days)

    def list_models(self) -> List[str]:
        """Models available from the configured provider."""
        if not self.llm_client:
            return []
        return self.llm_client.list_models()

    # --------- turns ----------

    def build_request_messages(
        self,
        memory_context: str,
        text: str,
        attachments: Optional[List[Attachment]] = None
    ) -> List[LLMMessage]:
        """
        Assemble the provider message list for one turn.

        Order: system prompt, memory context, then the user message.
        """
        messages = []

        if self.settings.system_prompt.strip():
            messages.append(LLMMessage(role="system", content=self.settings.system_prompt.strip()))

        if memory_context and memory_context.strip():
            messages.append(LLMMessage(role="system", content=memory_context.strip()))

        messages.append(LLMMessage(
            role="user",
            content=text.strip(),
            attachments=list(attachments or [])
        ))
        return messages

    def _prepare_turn(
        self,
        chat_id: str,
        text: str,
        attachments: Optional[List[Attachment]]
    ) -> Tuple[List[Message], List[LLMMessage]]:
        if not text.strip() and not attachments:
            raise ValueError("Message or files are required")
        if not self.llm_client:
            raise RuntimeError(
                f"No LLM client available. Set an API key for {self.settings.llm_provider}."
            )

        transcript = self.history.load_messages(chat_id)

        # Context reflects the chat before this turn
        memory_context = self.memory.load_context(chat_id) if self.settings.memory_enabled else ""

        content = text.strip()
        if attachments:
            names = ", ".join(a.name for a in attachments)
            content = f"{content}\n[Attached: {names}]" if content else f"[Attached: {names}]"

        transcript.append(Message(
            id=str(len(transcript) + 1),
            role=MessageRole.USER,
            content=content,
            timestamp=datetime.now()
        ))

        request = self.build_request_messages(memory_context, text, attachments)
        return transcript, request

    def _finish_turn(self, chat_id: str, transcript: List[Message], reply: str):
        transcript.append(Message(
            id=str(len(transcript) + 1),
            role=MessageRole.ASSISTANT,
            content=reply,
            timestamp=datetime.now()
        ))

        self.history.save_messages(chat_id, transcript)

        if self.settings.memory_enabled and transcript:
            self.memory.update_memory(chat_id, transcript)

    def send_message(
        self,
        chat_id: str,
        text: str,
        attachments: Optional[List[Attachment]] = None
    ) -> str:
        """
        Run one chat turn and return the assistant reply.

        Args:
            chat_id: Chat ID
            text: User message text
            attachments: Optional files (images as data URLs, text files as text)

        Returns:
            Assistant reply text
        """
        transcript, request = self._prepare_turn(chat_id, text, attachments)

        response = self.llm_client.chat(
            messages=request,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens
        )

        self._finish_turn(chat_id, transcript, response.content)
        return response.content

    def stream_message(
        self,
        chat_id: str,
        text: str,
        attachments: Optional[List[Attachment]] = None
    ) -> Iterator[str]:
        """
        Run one chat turn, yielding reply deltas as they stream in.

        The turn is persisted once the stream is exhausted.
        """
        transcript, request = self._prepare_turn(chat_id, text, attachments)

        parts = []
        for delta in self.llm_client.stream_chat(
            messages=request,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens
        ):
            parts.append(delta)
            yield delta

        self._finish_turn(chat_id, transcript, "".join(parts))
