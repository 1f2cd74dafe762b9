"""Anthropic Claude LLM client implementation."""

import os
import logging
from typing import Optional, List, Dict, Any, Iterator, Tuple

from .base_client import BaseLLMClient, Message, LLMResponse, Attachment, attachment_text

logger = logging.getLogger(__name__)


def _split_data_url(data_url: str, fallback_type: str) -> Tuple[str, str]:
    """Split "data:<type>;base64,<data>" into (media_type, data)."""
    if data_url.startswith("data:") and "," in data_url:
        header, data = data_url.split(",", 1)
        media_type = header[len("data:"):].split(";", 1)[0] or fallback_type
        return media_type, data
    return fallback_type, data_url


class AnthropicClient(BaseLLMClient):
    """Anthropic Claude client implementation."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (falls back to ANTHROPIC_API_KEY env var)
            model: Model to use (default: claude-sonnet-4-20250514)
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client = None

        if self.api_key:
            try:
                import anthropic
                self.client = anthropic.Anthropic(api_key=self.api_key)
                logger.info(f"Anthropic client initialized with model: {self.model}")
            except ImportError:
                logger.error("anthropic package not installed. Run: pip install anthropic")
        else:
            logger.warning("No Anthropic API key provided")

    def _require_client(self):
        if not self.client:
            raise RuntimeError("Anthropic client not initialized. Check API key.")

    @staticmethod
    def _attachment_block(attachment: Attachment) -> Dict[str, Any]:
        if attachment.is_image:
            media_type, data = _split_data_url(attachment.content, attachment.mime_type)
            return {
                "type": "image",
                "source": {"type": "base64", "media_type": media_type, "data": data}
            }
        return {"type": "text", "text": attachment_text(attachment)}

    def _request_kwargs(
        self,
        messages: List[Message],
        temperature: float,
        max_tokens: int
    ) -> Dict[str, Any]:
        # Separate system messages from conversation
        system_content = ""
        conversation_messages = []

        for msg in messages:
            if msg.role == "system":
                system_content += msg.content + "\n"
            elif msg.attachments:
                content_blocks = []
                if msg.content.strip():
                    content_blocks.append({"type": "text", "text": msg.content.strip()})
                content_blocks.extend(self._attachment_block(a) for a in msg.attachments)
                conversation_messages.append({
                    "role": msg.role,
                    "content": content_blocks
                })
            else:
                conversation_messages.append({
                    "role": msg.role,
                    "content": msg.content
                })

        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": conversation_messages,
        }

        if system_content:
            kwargs["system"] = system_content.strip()

        return kwargs

    def chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> LLMResponse:
        """Send chat completion request to Anthropic."""
        self._require_client()

        try:
            response = self.client.messages.create(
                **self._request_kwargs(messages, temperature, max_tokens)
            )

            content = ""
            for block in response.content:
                if block.type == "text":
                    content += block.text

            usage = None
            if response.usage:
                usage = {
                    "prompt_tokens": response.usage.input_tokens,
                    "completion_tokens": response.usage.output_tokens,
                    "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
                }

            return LLMResponse(
                content=content,
                usage=usage,
                finish_reason=response.stop_reason
            )

        except Exception as e:
            logger.error(f"Anthropic API error: {e}")
            raise

    def stream_chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> Iterator[str]:
        """Stream text deltas from Anthropic."""
        self._require_client()

        try:
            with self.client.messages.stream(
                **self._request_kwargs(messages, temperature, max_tokens)
            ) as stream:
                for text in stream.text_stream:
                    if text:
                        yield text
        except Exception as e:
            logger.error(f"Anthropic streaming error: {e}")
            raise

    def list_models(self) -> List[str]:
        """List model IDs from Anthropic."""
        self._require_client()

        try:
            return sorted(model.id for model in self.client.models.list())
        except Exception as e:
            logger.error(f"Failed to fetch models: {e}")
            raise

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "anthropic"

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model
