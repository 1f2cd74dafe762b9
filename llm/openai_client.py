"""OpenAI LLM client implementation."""

import os
import logging
from typing import Optional, List, Dict, Any, Iterator

from .base_client import BaseLLMClient, Message, LLMResponse, attachment_text

logger = logging.getLogger(__name__)


class OpenAIClient(BaseLLMClient):
    """OpenAI chat completions client."""

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY env var)
            model: Model to use (default: gpt-4o-mini)
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client = None

        if self.api_key:
            try:
                from openai import OpenAI
                self.client = OpenAI(api_key=self.api_key)
                logger.info(f"OpenAI client initialized with model: {self.model}")
            except ImportError:
                logger.error("openai package not installed. Run: pip install openai")
        else:
            logger.warning("No OpenAI API key provided")

    def _require_client(self):
        if not self.client:
            raise RuntimeError("OpenAI client not initialized. Check API key.")

    @staticmethod
    def _convert_message(msg: Message) -> Dict[str, Any]:
        """Convert to OpenAI format; attachments become content parts."""
        if not msg.attachments:
            return {"role": msg.role, "content": msg.content}

        content = []
        if msg.content.strip():
            content.append({"type": "text", "text": msg.content.strip()})

        for attachment in msg.attachments:
            if attachment.is_image:
                content.append({
                    "type": "image_url",
                    "image_url": {"url": attachment.content, "detail": "auto"}
                })
            else:
                content.append({"type": "text", "text": attachment_text(attachment)})

        # A lone text part is sent as a plain string
        if len(content) == 1 and content[0]["type"] == "text":
            return {"role": msg.role, "content": content[0]["text"]}
        return {"role": msg.role, "content": content}

    def _request_kwargs(
        self,
        messages: List[Message],
        temperature: float,
        max_tokens: int
    ) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [self._convert_message(msg) for msg in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    def chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> LLMResponse:
        """Send chat completion request to OpenAI."""
        self._require_client()

        try:
            response = self.client.chat.completions.create(
                **self._request_kwargs(messages, temperature, max_tokens)
            )

            choice = response.choices[0]

            usage = None
            if response.usage:
                usage = {
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                }

            return LLMResponse(
                content=choice.message.content or "",
                usage=usage,
                finish_reason=choice.finish_reason
            )

        except Exception as e:
            logger.error(f"OpenAI API error: {e}")
            raise

    def stream_chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> Iterator[str]:
        """Stream chat completion deltas from OpenAI."""
        self._require_client()

        try:
            stream = self.client.chat.completions.create(
                stream=True,
                **self._request_kwargs(messages, temperature, max_tokens)
            )

            for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content or ""
                if delta:
                    yield delta
                if chunk.choices[0].finish_reason:
                    logger.debug(f"OpenAI stream finished: {chunk.choices[0].finish_reason}")

        except Exception as e:
            logger.error(f"OpenAI streaming error: {e}")
            raise

    def list_models(self) -> List[str]:
        """List model IDs from OpenAI."""
        self._require_client()

        try:
            return sorted(model.id for model in self.client.models.list())
        except Exception as e:
            logger.error(f"Failed to fetch models: {e}")
            raise

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "openai"

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model
