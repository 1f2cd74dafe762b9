"""Tests for ChatMemory compaction."""

import pytest
from datetime import datetime, timedelta
from memory.chat_memory import ChatMemory
from memory.kv_store import InMemoryKeyValueStore, StorageError
from memory.models import Message, MessageRole, MemoryRecord, ImportanceReason


START = datetime(2026, 1, 1, 12, 0, 0)


class FakeClock:
    """Callable clock that tests can move."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FlakyStore(InMemoryKeyValueStore):
    """In-memory store whose reads or writes can be made to fail."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False
        self.fail_reads = False

    def get(self, key):
        if self.fail_reads:
            raise StorageError("read failed")
        return super().get(key)

    def set(self, key, value):
        if self.fail_writes:
            raise StorageError("write failed")
        super().set(key, value)


def make_messages(count: int, content: str = "Message number {i} about testing"):
    """Alternating user/assistant messages, user first."""
    return [
        Message(
            id=str(i + 1),
            role=MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT,
            content=content.format(i=i, chunk=i // 15),
            timestamp=START + timedelta(minutes=i)
        )
        for i in range(count)
    ]


class TestShortConversations:
    """Conversations of at most CHUNK_SIZE messages are kept verbatim."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryKeyValueStore()
        self.memory = ChatMemory(self.store, clock=FakeClock())

    @pytest.mark.parametrize("count", [1, 2, 8, 15])
    def test_context_lists_all_messages_in_order(self, count):
        """Test that short chats render only a Recent Messages section."""
        messages = make_messages(count)
        self.memory.update_memory("chat", messages)

        context = self.memory.load_context("chat")

        expected = ["Recent Messages:"] + [
            f"{'User' if m.role == MessageRole.USER else 'Assistant'}: {m.content}"
            for m in messages
        ]
        assert context == "\n".join(expected)
        assert "Recent Discussion:" not in context
        assert "Historical Context:" not in context

    def test_short_record_has_no_chunks(self):
        """Test the trivial record shape."""
        messages = make_messages(15)
        self.memory.update_memory("chat", messages)

        record = self.memory.load_record("chat")
        assert record.immediate_messages == messages
        assert record.recent_chunks == []
        assert record.historical_summary == ""
        assert record.total_messages == 15
        assert record.last_updated == START

    def test_important_messages_extracted_for_short_chats(self):
        """Test that pinned facts are kept even without chunking."""
        messages = make_messages(4)
        messages[0] = messages[0].model_copy(update={"content": "My goal is to ship on Friday"})
        self.memory.update_memory("chat", messages)

        record = self.memory.load_record("chat")
        assert len(record.important_messages) == 1
        assert record.important_messages[0].reason == ImportanceReason.USER_INFO

        context = self.memory.load_context("chat")
        assert "Important Information:\n- My goal is to ship on Friday\n" in context

    def test_record_stored_under_prefixed_key(self):
        """Test the storage key format."""
        self.memory.update_memory("abc", make_messages(3))

        assert self.store.list_keys() == ["chat_memory_abc"]
        stored = MemoryRecord.model_validate_json(self.store.get("chat_memory_abc"))
        assert stored.conversation_id == "abc"


class TestLongConversations:
    """Layered compaction for conversations longer than CHUNK_SIZE."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.store = InMemoryKeyValueStore()
        self.memory = ChatMemory(self.store, clock=self.clock)

    @pytest.mark.parametrize("count", [16, 23, 24, 40, 83, 200])
    def test_immediate_messages_are_last_eight(self, count):
        """Test that the immediate tier always holds the last 8 messages."""
        messages = make_messages(count)
        self.memory.update_memory("chat", messages)

        record = self.memory.load_record("chat")
        assert record.immediate_messages == messages[-8:]
        assert record.total_messages == count

    def test_chunk_boundaries(self):
        """Test that chunks cover [0,15), [15,30), ... with a short tail."""
        older = make_messages(32)

        chunks = self.memory.create_chunks(older)

        assert [c.id for c in chunks] == ["chunk_0_14", "chunk_15_29", "chunk_30_31"]
        assert [(c.start_message_id, c.end_message_id) for c in chunks] == [
            ("1", "15"), ("16", "30"), ("31", "32")
        ]
        assert chunks[0].timestamp == older[14].timestamp
        assert chunks[-1].timestamp == older[31].timestamp

    def test_chunk_generation_is_deterministic(self):
        """Test that re-chunking the same input gives identical summaries."""
        older = make_messages(45)

        first = self.memory.create_chunks(older)
        second = self.memory.create_chunks(older)

        assert [(c.summary, c.topics) for c in first] == [(c.summary, c.topics) for c in second]

    def test_chunk_token_estimate_follows_summary(self):
        """Test estimated_token_count is ceil(len(summary) / 4)."""
        for chunk in self.memory.create_chunks(make_messages(30)):
            assert chunk.estimated_token_count == -(-len(chunk.summary) // 4)

    def test_no_folding_up_to_three_chunks(self):
        """Test that three chunks stay in the chunk tier."""
        # 8 immediate + 45 older = exactly 3 chunks
        self.memory.update_memory("chat", make_messages(53))

        record = self.memory.load_record("chat")
        assert len(record.recent_chunks) == 3
        assert record.historical_summary == ""

    def test_oldest_chunks_fold_into_historical_summary(self):
        """Test folding of chunks beyond MAX_RECENT_CHUNKS."""
        # 75 older messages -> 5 chunks, 2 folded
        messages = make_messages(83, content="Message {i} covers subject{chunk}")
        self.memory.update_memory("chat", messages)

        record = self.memory.load_record("chat")
        assert [c.id for c in record.recent_chunks] == [
            "chunk_30_44", "chunk_45_59", "chunk_60_74"
        ]

        summary = record.historical_summary
        assert summary.startswith("Overall conversation covered: message, covers, subject0, subject1. ")
        assert "Key developments: " in summary
        assert "subject2" not in summary

        folded = self.memory.create_chunks(messages[:30])
        assert summary.endswith(" → ".join(c.summary for c in folded))

    def test_historical_topics_are_deduplicated(self):
        """Test that shared topics appear once in the folded summary."""
        self.memory.update_memory("chat", make_messages(83))

        summary = self.memory.load_record("chat").historical_summary
        assert summary.startswith("Overall conversation covered: message, number, about, testing. ")

    def test_previous_historical_summary_is_prepended(self):
        """Test that a second fold chains onto the stored summary."""
        messages = make_messages(83)
        self.memory.update_memory("chat", messages)
        first = self.memory.load_record("chat").historical_summary

        self.memory.update_memory("chat", messages)
        second = self.memory.load_record("chat").historical_summary

        assert second == f"{first} → {first}"

    def test_historical_summary_is_capped(self):
        """Test the 800 character limit on the historical summary."""
        long_content = "Message {i} " + "verbose explanation " * 30 + "decided?"
        messages = make_messages(200, content=long_content)

        for _ in range(3):
            self.memory.update_memory("chat", messages)

        summary = self.memory.load_record("chat").historical_summary
        assert len(summary) == 803
        assert summary.endswith("...")

    def test_update_is_idempotent_apart_from_timestamp(self):
        """Test that the same list yields the same record."""
        messages = make_messages(40)
        self.memory.update_memory("chat", messages)
        first = self.memory.load_record("chat")

        self.clock.now = START + timedelta(hours=1)
        self.memory.update_memory("chat", messages)
        second = self.memory.load_record("chat")

        assert first.model_dump(exclude={"last_updated"}) == second.model_dump(exclude={"last_updated"})
        assert second.last_updated == START + timedelta(hours=1)

    def test_shrinking_history_drops_stale_summary(self):
        """Test that the record is replaced wholesale, not merged."""
        self.memory.update_memory("chat", make_messages(83))
        self.memory.update_memory("chat", make_messages(20))

        record = self.memory.load_record("chat")
        assert record.historical_summary == ""
        assert record.total_messages == 20
        assert len(record.recent_chunks) == 1


class TestImportantMessages:
    """Pinned fact extraction through update_memory."""

    def setup_method(self):
        """Set up test fixtures."""
        self.memory = ChatMemory(InMemoryKeyValueStore(), clock=FakeClock())

    def test_name_is_remembered(self):
        """Test the 'my name is' example in a 20 message chat."""
        messages = make_messages(20)
        messages[2] = messages[2].model_copy(update={"content": "Hi there, my name is Alex."})

        self.memory.update_memory("chat", messages)
        important = self.memory.load_record("chat").important_messages

        assert len(important) == 1
        assert important[0].reason == ImportanceReason.USER_INFO
        assert "my name is Alex" in important[0].content
        assert important[0].message_id == "3"

    def test_important_messages_capped_at_five_most_recent(self):
        """Test that only the last five flagged entries survive."""
        messages = [
            Message(
                id=str(i + 1),
                role=MessageRole.USER,
                content=f"My name is Sam {i} and I decide things",
                timestamp=START + timedelta(minutes=i)
            )
            for i in range(20)
        ]

        self.memory.update_memory("chat", messages)
        important = self.memory.load_record("chat").important_messages

        assert [(m.message_id, m.reason) for m in important] == [
            ("18", ImportanceReason.DECISION),
            ("19", ImportanceReason.USER_INFO),
            ("19", ImportanceReason.DECISION),
            ("20", ImportanceReason.USER_INFO),
            ("20", ImportanceReason.DECISION),
        ]

    def test_important_content_survives_eviction(self):
        """Test that pinned content outlives the immediate tier."""
        messages = make_messages(60)
        messages[0] = messages[0].model_copy(update={"content": "I work at a bakery"})

        self.memory.update_memory("chat", messages)
        record = self.memory.load_record("chat")

        assert messages[0] not in record.immediate_messages
        assert record.important_messages[0].content == "I work at a bakery"

    def test_long_important_content_truncated_in_context(self):
        """Test the 100 character cap when rendering pinned facts."""
        messages = make_messages(2)
        messages[0] = messages[0].model_copy(update={"content": "I need " + "x" * 200})

        self.memory.update_memory("chat", messages)
        context = self.memory.load_context("chat")

        assert f"- {('I need ' + 'x' * 200)[:100]}...\n" in context


class TestContextRendering:
    """load_context output."""

    def setup_method(self):
        """Set up test fixtures."""
        self.memory = ChatMemory(InMemoryKeyValueStore(), clock=FakeClock())

    def test_missing_record_gives_empty_context(self):
        """Test that unknown chats have no context."""
        assert self.memory.load_context("unknown") == ""

    def test_sections_render_in_fixed_order(self):
        """Test section order with every tier populated."""
        messages = make_messages(83)
        messages[70] = messages[70].model_copy(update={"content": "Let's go with option B"})

        self.memory.update_memory("chat", messages)
        context = self.memory.load_context("chat")

        positions = [
            context.index("Historical Context:"),
            context.index("Recent Discussion:"),
            context.index("Important Information:"),
            context.index("Recent Messages:"),
        ]
        assert positions == sorted(positions)
        assert "1. Topics: " in context
        assert "3. Topics: " in context
        assert "4. Topics: " not in context

    def test_oversized_context_is_truncated(self):
        """Test the aggregate 3000 token gate."""
        messages = make_messages(2, content="word " * 3000)
        self.memory.update_memory("chat", messages)

        context = self.memory.load_context("chat")

        notice = "\n[Context truncated to fit token limit]"
        assert context.endswith(notice)
        assert len(context) == 12000 + len(notice)

    def test_context_under_limit_is_not_truncated(self):
        """Test that small contexts are returned intact."""
        self.memory.update_memory("chat", make_messages(83))

        context = self.memory.load_context("chat")
        assert len(context) <= 12000
        assert "[Context truncated" not in context


class TestStatusAndLifecycle:
    """Status, clear and cleanup operations."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.store = InMemoryKeyValueStore()
        self.memory = ChatMemory(self.store, clock=self.clock)

    def test_status_for_unknown_chat(self):
        """Test status of a chat with no memory."""
        status = self.memory.get_memory_status("nope")
        assert status.has_memory is False
        assert status.message_count == 0
        assert status.last_updated is None

    def test_empty_update_persists_empty_record(self):
        """Test that updating with no messages still creates memory."""
        self.memory.update_memory("fresh", [])

        status = self.memory.get_memory_status("fresh")
        assert status.has_memory is True
        assert status.message_count == 0
        assert self.memory.load_context("fresh") == ""

    def test_status_after_update(self):
        """Test status reflects the message count and update time."""
        self.memory.update_memory("chat", make_messages(30))

        status = self.memory.get_memory_status("chat")
        assert status.has_memory is True
        assert status.message_count == 30
        assert status.last_updated == START

    def test_clear_memory(self):
        """Test that clearing removes the record."""
        self.memory.update_memory("chat", make_messages(5))
        self.memory.clear_memory("chat")

        assert self.memory.get_memory_status("chat").has_memory is False

    def test_clear_memory_is_idempotent(self):
        """Test clearing a chat that has no memory."""
        self.memory.clear_memory("never-stored")
        self.memory.clear_memory("never-stored")
        assert len(self.store) == 0

    def test_cleanup_removes_old_and_corrupted_records(self):
        """Test the retention sweep."""
        self.memory.update_memory("old", make_messages(3))
        self.clock.now = START + timedelta(days=40)
        self.memory.update_memory("recent", make_messages(3))
        self.store.set("chat_memory_broken", "{not json")
        self.store.set("chat_history_old", "transcripts are not touched")

        removed = self.memory.cleanup_old_memories(30)

        assert removed == 2
        assert sorted(self.store.list_keys()) == ["chat_history_old", "chat_memory_recent"]

    def test_cleanup_keeps_records_inside_window(self):
        """Test that fresh records survive cleanup."""
        self.memory.update_memory("chat", make_messages(3))
        self.clock.now = START + timedelta(days=29)

        assert self.memory.cleanup_old_memories() == 0
        assert self.memory.get_memory_status("chat").has_memory is True


class TestStorageFailures:
    """Failures degrade to 'no memory' instead of raising."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = FlakyStore()
        self.memory = ChatMemory(self.store, clock=FakeClock())

    def test_failed_write_keeps_previous_record(self):
        """Test that a write error leaves the old snapshot in place."""
        self.memory.update_memory("chat", make_messages(3))
        self.store.fail_writes = True

        self.memory.update_memory("chat", make_messages(10))

        assert self.memory.get_memory_status("chat").message_count == 3

    def test_failed_read_returns_safe_defaults(self):
        """Test that read errors look like missing memory."""
        self.memory.update_memory("chat", make_messages(3))
        self.store.fail_reads = True

        assert self.memory.load_context("chat") == ""
        assert self.memory.get_memory_status("chat").has_memory is False

    def test_corrupted_record_treated_as_absent(self):
        """Test that unparseable records are ignored on read."""
        self.store.set("chat_memory_chat", '{"conversation_id": 5')

        assert self.memory.load_context("chat") == ""
        assert self.memory.get_memory_status("chat").has_memory is False

    def test_failed_read_while_folding_keeps_previous_record(self):
        """Test that an update needing the old summary aborts when it cannot read it."""
        self.memory.update_memory("chat", make_messages(83))
        before = self.memory.load_record("chat")

        self.store.fail_reads = True
        self.memory.update_memory("chat", make_messages(84))
        self.store.fail_reads = False

        after = self.memory.load_record("chat")
        assert after.total_messages == 83
        assert after.historical_summary == before.historical_summary

    def test_corrupted_record_replaced_while_folding(self):
        """Test that a corrupted previous record counts as no history."""
        self.store.set("chat_memory_chat", "not json")

        self.memory.update_memory("chat", make_messages(83))

        fresh = ChatMemory(InMemoryKeyValueStore(), clock=FakeClock())
        fresh.update_memory("chat", make_messages(83))

        record = self.memory.load_record("chat")
        assert record.total_messages == 83
        assert record.historical_summary == fresh.load_record("chat").historical_summary
