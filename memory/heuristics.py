"""Rule-based text heuristics used by the memory compactor.

Nothing here calls a model: topics, key points and pinned facts are all
derived from plain substring and word matching over message content.
Matching is case-insensitive and has no word-boundary checks, so phrases
like "I am not sure" still count as user information.
"""

import math
import re
from typing import List, Sequence

from .models import Message, MessageRole, ImportantMessage, ImportanceReason

TRUNCATION_MARKER = "..."

STOP_WORDS = frozenset([
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "how", "what", "when", "where", "why", "can",
    "could", "would", "should", "is", "are", "was", "were", "be", "been",
    "being", "have", "has", "had", "do", "does", "did", "will", "shall",
    "may", "might", "must",
])

MIN_TOPIC_LENGTH = 5
MAX_TOPICS = 5
MAX_KEY_POINTS = 3
MAX_CHUNK_SUMMARY_CHARS = 300

KEY_POINT_MARKERS = ("decided", "solution", "fixed")

USER_INFO_MARKERS = ("i am", "my name is", "i work", "i need", "my goal")
DECISION_MARKERS = ("decide", "choose", "go with")
INSTRUCTION_MARKERS = ("requirements:", "must have", "important:")

# ASCII only: non-latin letters are stripped along with punctuation
_NON_WORD = re.compile(r"[^\w]", re.ASCII)


def estimate_tokens(text: str) -> int:
    """Rough token count, ~4 characters per token."""
    return math.ceil(len(text) / 4)


def truncate(text: str, limit: int, marker: str = TRUNCATION_MARKER) -> str:
    """Cut text to `limit` characters, appending `marker` if anything was cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def _contains_any(text: str, markers: Sequence[str]) -> bool:
    return any(marker in text for marker in markers)


def extract_topics(messages: Sequence[Message]) -> List[str]:
    """
    Pick up to five candidate topic words from a run of messages.

    Words are lower-cased and stripped of non-word characters; stop words
    and words of four characters or fewer are skipped. The first five
    distinct words in encounter order win.
    """
    topics: dict = {}

    for msg in messages:
        for raw in msg.content.split():
            word = _NON_WORD.sub("", raw).lower()
            if len(word) >= MIN_TOPIC_LENGTH and word not in STOP_WORDS:
                topics.setdefault(word, None)

    return list(topics)[:MAX_TOPICS]


def extract_key_points(messages: Sequence[Message]) -> List[str]:
    """Collect decision/solution snippets and user questions, in message order."""
    key_points = []

    for msg in messages:
        content = msg.content.lower()

        if _contains_any(content, KEY_POINT_MARKERS):
            key_points.append(truncate(msg.content, 100))

        if msg.role == MessageRole.USER and "?" in content:
            key_points.append(f"User asked: {truncate(msg.content, 80)}")

    return key_points[:MAX_KEY_POINTS]


def generate_chunk_summary(messages: Sequence[Message]) -> str:
    """Summarize a chunk as its topics line followed by up to three key points."""
    topics = extract_topics(messages)
    parts = [f"Topics: {', '.join(topics)}"]
    parts.extend(extract_key_points(messages))

    return truncate(". ".join(parts), MAX_CHUNK_SUMMARY_CHARS)


def extract_important_messages(
    messages: Sequence[Message],
    limit: int = 5
) -> List[ImportantMessage]:
    """
    Flag messages worth pinning regardless of age.

    Each rule is checked independently, so one message can yield several
    entries. Only the last `limit` entries (in scan order) are kept.

    Args:
        messages: Messages to scan, oldest first
        limit: Maximum number of entries to keep

    Returns:
        List of ImportantMessage snapshots
    """
    important: List[ImportantMessage] = []

    def pin(msg: Message, reason: ImportanceReason):
        important.append(ImportantMessage(
            message_id=msg.id,
            content=msg.content,
            reason=reason,
            timestamp=msg.timestamp
        ))

    for msg in messages:
        content = msg.content.lower()
        is_user = msg.role == MessageRole.USER

        if is_user and _contains_any(content, USER_INFO_MARKERS):
            pin(msg, ImportanceReason.USER_INFO)

        if _contains_any(content, DECISION_MARKERS):
            pin(msg, ImportanceReason.DECISION)

        if is_user and _contains_any(content, INSTRUCTION_MARKERS):
            pin(msg, ImportanceReason.INSTRUCTION)

    if limit <= 0:
        return []
    return important[-limit:]
