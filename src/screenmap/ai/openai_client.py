"""Async OpenAI client wrapper with retry & singleton semantics."""
from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any

import openai  # type: ignore

from ..core.config import Config, config
from ..core.prompt_log import TokenUsage
from ..utils.helpers import retry_with_backoff

__all__ = ["ChatResult", "OpenAIClient", "encode_data_url", "get_openai_client"]

# Constant settings
_MAX_RETRIES = 4
_BASE_BACKOFF = 1.0  # seconds


@dataclass(slots=True)
class ChatResult:
    """Assistant reply text plus the token usage the API reported."""

    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)


def encode_data_url(image_bytes: bytes, mime_type: str = "image/png") -> str:
    """Return ``image_bytes`` as a base64 ``data:`` URL."""
    return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"


def _usage_from(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        input=getattr(usage, "prompt_tokens", None),
        output=getattr(usage, "completion_tokens", None),
        total=getattr(usage, "total_tokens", None),
    )


class OpenAIClient:
    """Lightweight async wrapper around OpenAI chat completion API."""

    _instance: OpenAIClient | None = None

    @classmethod
    def instance(cls) -> OpenAIClient:
        """Return the singleton instance, creating it on first use."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def __init__(self, settings: Config = config, client: Any | None = None) -> None:
        """Create the client; ``client`` replaces the underlying ``AsyncOpenAI``."""
        if client is None:
            api_key = settings.openai_api_key
            if not api_key:
                raise ValueError("OPENAI_API_KEY not configured")
            client = openai.AsyncOpenAI(api_key=api_key)
        self._client = client

        self.model = settings.openai_model
        self.temperature = float(settings.openai_temperature)
        self.max_tokens = int(settings.openai_max_tokens)

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    async def chat(
        self,
        *,
        prompt: str | None = None,
        system_prompt: str | None = None,
        messages: list[dict[str, Any]] | None = None,
    ) -> ChatResult:
        """Send chat completion request and return assistant reply.

        Args:
            prompt: Convenience user prompt string. Ignored if ``messages`` is provided.
            system_prompt: System prompt string (used if ``messages`` is ``None``).
            messages: Full message list to pass through; takes precedence over *prompt*.

        """
        if messages is None:
            if prompt is None:
                raise ValueError("Either `messages` or `prompt` must be provided")

            messages = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": prompt})

        response = await retry_with_backoff(
            self._client.chat.completions.create,
            model=self.model,
            messages=messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            max_retries=_MAX_RETRIES - 1,
            base_delay=_BASE_BACKOFF,
            exceptions=(openai.APIError, openai.RateLimitError),
        )
        content = response.choices[0].message.content  # type: ignore[attr-defined]
        if content is None:
            raise RuntimeError("OpenAI returned empty content")
        return ChatResult(text=content, usage=_usage_from(response))

    async def chat_with_image(
        self,
        *,
        system_prompt: str,
        prompt: str,
        image_bytes: bytes,
    ) -> ChatResult:
        """Send one user turn made of ``prompt`` and an inline image."""
        messages = [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": encode_data_url(image_bytes)}},
                ],
            },
        ]
        return await self.chat(messages=messages)


# Convenience getter
get_openai_client = OpenAIClient.instance
