"""Memory data models."""

from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Author of a chat message."""
    USER = "user"
    ASSISTANT = "assistant"


class ImportanceReason(str, Enum):
    """Why a message was pinned as important."""
    USER_INFO = "user_info"
    DECISION = "decision"
    IMPORTANT_FACT = "important_fact"
    INSTRUCTION = "instruction"


class Message(BaseModel):
    """A single chat message as seen by the compactor."""
    id: str
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)


class ImportantMessage(BaseModel):
    """Pinned fact copied out of a message."""
    message_id: str
    content: str  # snapshot, outlives the source message
    reason: ImportanceReason
    timestamp: datetime


class ConversationChunk(BaseModel):
    """Summary of a contiguous run of older messages."""
    id: str
    start_message_id: str
    end_message_id: str
    summary: str
    topics: List[str] = Field(default_factory=list)
    estimated_token_count: int = 0
    timestamp: datetime


class MemoryRecord(BaseModel):
    """Compacted memory for one conversation."""
    conversation_id: str
    historical_summary: str = ""
    recent_chunks: List[ConversationChunk] = Field(default_factory=list)
    immediate_messages: List[Message] = Field(default_factory=list)
    important_messages: List[ImportantMessage] = Field(default_factory=list)
    total_messages: int = 0
    last_updated: datetime = Field(default_factory=datetime.now)


class MemoryStatus(BaseModel):
    """Memory summary shown by the UI."""
    has_memory: bool
    message_count: int = 0
    last_updated: Optional[datetime] = None
