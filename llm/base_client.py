"""Base LLM client interface."""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Iterator
from pydantic import BaseModel, Field


class Attachment(BaseModel):
    """File sent along with a user message."""
    name: str
    mime_type: str = "text/plain"
    content: str  # base64 data URL for images, raw text otherwise

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


class Message(BaseModel):
    """Chat message sent to a provider."""
    role: str  # "system", "user", "assistant"
    content: str
    attachments: List[Attachment] = Field(default_factory=list)


class LLMResponse(BaseModel):
    """Response from LLM."""
    content: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None


def attachment_text(attachment: Attachment) -> str:
    """Inline form of a non-image attachment."""
    return f"File: {attachment.name}\n\n{attachment.content}"


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> LLMResponse:
        """
        Send chat completion request.

        Args:
            messages: List of messages in conversation
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with content
        """
        pass

    @abstractmethod
    def stream_chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> Iterator[str]:
        """Send chat completion request, yielding text deltas as they arrive."""
        pass

    @abstractmethod
    def list_models(self) -> List[str]:
        """List model IDs available to the configured API key."""
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the name of the LLM provider."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the name of the model being used."""
        pass
