"""Tiered conversation memory for LLM context injection."""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from pydantic import ValidationError

from .kv_store import KeyValueStore
from .models import (
    Message,
    MessageRole,
    ConversationChunk,
    MemoryRecord,
    MemoryStatus,
)
from .heuristics import (
    estimate_tokens,
    truncate,
    extract_topics,
    generate_chunk_summary,
    extract_important_messages,
)

logger = logging.getLogger(__name__)


class ChatMemory:
    """
    Compacts a growing chat into a bounded context summary.

    Four tiers are kept per conversation:
    - immediate: the last few messages, verbatim
    - chunks: fixed-width summaries of older messages
    - historical: one rolling summary of the oldest chunks
    - important: pinned facts picked out by keyword rules

    The record is rebuilt from the full message list on every update; only
    the previous historical summary carries over between calls.
    """

    KEY_PREFIX = "chat_memory_"

    # Configuration
    CHUNK_SIZE = 15
    MAX_RECENT_CHUNKS = 3
    MAX_IMMEDIATE_MESSAGES = 8
    MAX_IMPORTANT_MESSAGES = 5
    MAX_HISTORICAL_CHARS = 800
    MAX_IMPORTANT_CHARS = 100
    CONTEXT_TOKEN_LIMIT = 3000
    CONTEXT_CHAR_LIMIT = 12000
    CONTEXT_TRUNCATED_NOTICE = "\n[Context truncated to fit token limit]"
    HISTORY_SEPARATOR = " → "

    # Per-section budgets; not enforced, only CONTEXT_TOKEN_LIMIT is
    TOKEN_BUDGET = {
        "immediate": 1200,
        "chunks": 900,
        "historical": 600,
        "important": 400,
    }

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize chat memory.

        Args:
            store: Key-value store holding serialized memory records
            clock: Source of "now", injectable for tests
        """
        self.store = store
        self.clock = clock

    def _key(self, conversation_id: str) -> str:
        return f"{self.KEY_PREFIX}{conversation_id}"

    # --------- public API ----------

    def update_memory(self, conversation_id: str, messages: Sequence[Message]) -> None:
        """
        Recompute and persist the memory record for a conversation.

        Storage failures are logged and leave the previous record in place.

        Args:
            conversation_id: Conversation ID
            messages: Full message list, oldest first
        """
        try:
            record = self._process_messages(conversation_id, list(messages))
            self.store.set(self._key(conversation_id), record.model_dump_json())
            logger.debug(
                f"Updated memory for {conversation_id}: "
                f"{len(record.immediate_messages)} immediate, "
                f"{len(record.recent_chunks)} chunks, "
                f"{len(record.important_messages)} important"
            )
        except Exception as e:
            logger.error(f"Error updating chat memory for {conversation_id}: {e}")

    def load_context(self, conversation_id: str) -> str:
        """
        Render the stored memory as a single context string.

        Args:
            conversation_id: Conversation ID

        Returns:
            Context text, or "" when no memory is available
        """
        try:
            record = self.load_record(conversation_id)
            if not record:
                return ""
            return self.build_context_string(record)
        except Exception as e:
            logger.error(f"Error loading chat context for {conversation_id}: {e}")
            return ""

    def get_memory_status(self, conversation_id: str) -> MemoryStatus:
        """Report whether memory exists and how many messages it covers."""
        record = self.load_record(conversation_id)
        if not record:
            return MemoryStatus(has_memory=False)
        return MemoryStatus(
            has_memory=True,
            message_count=record.total_messages or 0,
            last_updated=record.last_updated
        )

    def clear_memory(self, conversation_id: str) -> None:
        """Delete the memory record for a conversation, if any."""
        try:
            self.store.remove(self._key(conversation_id))
        except Exception as e:
            logger.error(f"Error clearing chat memory for {conversation_id}: {e}")

    def cleanup_old_memories(self, max_age_days: int = 30) -> int:
        """
        Delete memory records not updated within `max_age_days`.

        Records that cannot be parsed are deleted as well.

        Args:
            max_age_days: Retention window in days

        Returns:
            Number of records removed
        """
        cutoff = self.clock() - timedelta(days=max_age_days)
        removed = 0

        try:
            keys = self.store.list_keys(self.KEY_PREFIX)
        except Exception as e:
            logger.error(f"Error cleaning up old memories: {e}")
            return 0

        for key in keys:
            try:
                stored = self.store.get(key)
                if not stored:
                    continue

                try:
                    record = MemoryRecord.model_validate_json(stored)
                    expired = _as_local_naive(record.last_updated) < cutoff
                except (ValidationError, ValueError) as e:
                    logger.warning(f"Removing corrupted memory record {key}: {e}")
                    expired = True

                if expired:
                    self.store.remove(key)
                    removed += 1
            except Exception as e:
                logger.error(f"Error cleaning up memory record {key}: {e}")

        if removed:
            logger.info(f"Removed {removed} memory records older than {max_age_days} days")
        return removed

    def load_record(self, conversation_id: str) -> Optional[MemoryRecord]:
        """
        Read and parse the stored record.

        Returns:
            MemoryRecord, or None when absent, unreadable or corrupted
        """
        try:
            return self._read_record(conversation_id)
        except Exception as e:
            logger.error(f"Error loading memory record for {conversation_id}: {e}")
            return None

    def _read_record(self, conversation_id: str) -> Optional[MemoryRecord]:
        """Like load_record, but storage errors propagate."""
        stored = self.store.get(self._key(conversation_id))
        if not stored:
            return None
        try:
            return MemoryRecord.model_validate_json(stored)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Ignoring corrupted memory record for {conversation_id}: {e}")
            return None

    # --------- compaction ----------

    def _process_messages(self, conversation_id: str, messages: List[Message]) -> MemoryRecord:
        """Build the layered memory record for a full message list."""
        now = self.clock()

        # Short conversations are kept verbatim
        if len(messages) <= self.CHUNK_SIZE:
            return MemoryRecord(
                conversation_id=conversation_id,
                immediate_messages=messages,
                important_messages=extract_important_messages(
                    messages, self.MAX_IMPORTANT_MESSAGES
                ),
                total_messages=len(messages),
                last_updated=now
            )

        important_messages = extract_important_messages(messages, self.MAX_IMPORTANT_MESSAGES)
        immediate_messages = messages[-self.MAX_IMMEDIATE_MESSAGES:]
        older_messages = messages[:-self.MAX_IMMEDIATE_MESSAGES]

        recent_chunks: List[ConversationChunk] = []
        historical_summary = ""

        if older_messages:
            recent_chunks = self.create_chunks(older_messages)

            if len(recent_chunks) > self.MAX_RECENT_CHUNKS:
                to_fold = recent_chunks[:-self.MAX_RECENT_CHUNKS]
                # A failed read aborts the update so the stored record survives
                previous = self._read_record(conversation_id)
                historical_summary = self.create_historical_summary(
                    to_fold,
                    previous.historical_summary if previous else ""
                )
                recent_chunks = recent_chunks[-self.MAX_RECENT_CHUNKS:]

        return MemoryRecord(
            conversation_id=conversation_id,
            historical_summary=historical_summary,
            recent_chunks=recent_chunks,
            immediate_messages=immediate_messages,
            important_messages=important_messages,
            total_messages=len(messages),
            last_updated=now
        )

    def create_chunks(self, messages: Sequence[Message]) -> List[ConversationChunk]:
        """Split messages into CHUNK_SIZE-wide summarized chunks."""
        chunks = []

        for start in range(0, len(messages), self.CHUNK_SIZE):
            chunk_messages = messages[start:start + self.CHUNK_SIZE]
            summary = generate_chunk_summary(chunk_messages)
            end = start + len(chunk_messages) - 1

            chunks.append(ConversationChunk(
                id=f"chunk_{start}_{end}",
                start_message_id=chunk_messages[0].id,
                end_message_id=chunk_messages[-1].id,
                summary=summary,
                topics=extract_topics(chunk_messages),
                estimated_token_count=estimate_tokens(summary),
                timestamp=chunk_messages[-1].timestamp
            ))

        return chunks

    def create_historical_summary(
        self,
        chunks: Sequence[ConversationChunk],
        existing_summary: str = ""
    ) -> str:
        """
        Fold chunks into the rolling historical summary.

        Args:
            chunks: Oldest chunks, in time order
            existing_summary: Previous historical summary, prepended if set

        Returns:
            Summary text of at most MAX_HISTORICAL_CHARS (plus marker)
        """
        topics: dict = {}
        for chunk in chunks:
            for topic in chunk.topics:
                topics.setdefault(topic, None)

        summaries = self.HISTORY_SEPARATOR.join(chunk.summary for chunk in chunks)
        historical = (
            f"Overall conversation covered: {', '.join(topics)}. "
            f"Key developments: {summaries}"
        )

        if existing_summary:
            historical = f"{existing_summary}{self.HISTORY_SEPARATOR}{historical}"

        return truncate(historical, self.MAX_HISTORICAL_CHARS)

    # --------- rendering ----------

    def build_context_string(self, record: MemoryRecord) -> str:
        """Render a memory record as prompt text, skipping empty sections."""
        parts: List[str] = []

        if record.historical_summary:
            parts.append(f"Historical Context:\n{record.historical_summary}\n")

        if record.recent_chunks:
            parts.append("Recent Discussion:")
            for index, chunk in enumerate(record.recent_chunks, 1):
                parts.append(f"{index}. {chunk.summary}")
            parts.append("")

        if record.important_messages:
            parts.append("Important Information:")
            for important in record.important_messages:
                parts.append(f"- {truncate(important.content, self.MAX_IMPORTANT_CHARS)}")
            parts.append("")

        if record.immediate_messages:
            parts.append("Recent Messages:")
            for msg in record.immediate_messages:
                role = "User" if msg.role == MessageRole.USER else "Assistant"
                parts.append(f"{role}: {msg.content}")

        context = "\n".join(parts)

        if estimate_tokens(context) > self.CONTEXT_TOKEN_LIMIT:
            return context[:self.CONTEXT_CHAR_LIMIT] + self.CONTEXT_TRUNCATED_NOTICE

        return context


def _as_local_naive(value: datetime) -> datetime:
    """Drop tzinfo so stored timestamps compare against naive local clocks."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)
