"""Shared plumbing for services that send one image plus JSON to OpenAI."""

from __future__ import annotations

import time
from typing import Any, Optional

from ..core.logger import log
from ..core.prompt_log import PromptTrackingContext, PromptType
from .openai_client import OpenAIClient, get_openai_client
from .response_parser import parse_json_payload


class ImagePromptService:
    """Sends ``system_prompt`` + a user prompt + an image and parses the JSON reply."""

    service_name: str = "OpenAI"
    prompt_type: PromptType = PromptType.ACCURACY_VALIDATION
    system_prompt: str = ""

    def __init__(self, client: Optional[OpenAIClient] = None) -> None:
        self._client = client

    @property
    def client(self) -> OpenAIClient:
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def ask(
        self,
        image_bytes: bytes,
        user_prompt: str,
        context: Optional[PromptTrackingContext] = None,
        *,
        system_prompt: Optional[str] = None,
        prompt_type: Optional[PromptType] = None,
    ) -> Any:
        """Return the parsed reply, or ``None`` when the reply is not JSON.

        ``system_prompt`` and ``prompt_type`` override the class defaults for
        services that make more than one kind of call.
        """
        start = time.perf_counter()
        result = await self.client.chat_with_image(
            system_prompt=system_prompt or self.system_prompt,
            prompt=user_prompt,
            image_bytes=image_bytes,
        )
        duration_ms = (time.perf_counter() - start) * 1000

        if context is not None:
            context.record(
                self.service_name,
                prompt_type or self.prompt_type,
                user_prompt,
                result.text,
                duration_ms,
                result.usage,
            )

        payload = parse_json_payload(result.text)
        if payload is None:
            log.warning(f"{self.service_name}: reply was not JSON: {result.text[:200]!r}")
        return payload
