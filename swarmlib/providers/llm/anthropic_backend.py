"""Anthropic messages API backend."""

import logging
from typing import List, Optional

from ...core.errors import ErrorContext, ProviderError
from ..constants import ANTHROPIC_API_VERSION, BackendKind
from ..decorators import completion_backend
from .base import CompletionBackend, CompletionBackendSettings
from .models import ChatMessage, CompletionOptions, CompletionResponse, TokenUsage

logger = logging.getLogger(__name__)


class AnthropicBackendSettings(CompletionBackendSettings):
    """Settings for the Anthropic backend."""
    api_base: Optional[str] = "https://api.anthropic.com/v1"
    api_version: str = ANTHROPIC_API_VERSION


@completion_backend(BackendKind.ANTHROPIC)
class AnthropicBackend(CompletionBackend[AnthropicBackendSettings]):
    """Backend for the Anthropic ``/messages`` endpoint.

    System messages are lifted out of the conversation into the request's
    ``system`` field; the remaining messages keep their order.
    """

    def _endpoint(self) -> str:
        base = (self.settings.api_base or "").rstrip("/")
        if base.endswith("/messages"):
            return base
        return f"{base}/messages"

    async def complete(
        self,
        model: str,
        messages: List[ChatMessage],
        options: CompletionOptions
    ) -> CompletionResponse:
        system_parts = [m.content for m in messages if m.role == "system"]
        conversation = [
            {"role": m.role, "content": m.content}
            for m in messages if m.role != "system"
        ]

        payload = {
            "model": model,
            "messages": conversation,
            "max_tokens": self._max_tokens(options),
            "temperature": self._temperature(options),
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        payload.update(self.settings.extra_body)

        headers = {"anthropic-version": self.settings.api_version}
        if self.settings.api_key:
            headers["x-api-key"] = self.settings.api_key

        data = await self._post_json(self._endpoint(), payload, headers)

        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise ProviderError(
                message="Response has no 'content' list",
                provider_name=self.name,
                context=ErrorContext.create(model=model)
            )
        text = "".join(
            block.get("text", "") for block in blocks
            if isinstance(block, dict) and block.get("type", "text") == "text"
        )

        usage = data.get("usage") or {}
        input_tokens = int(usage.get("input_tokens") or 0)
        output_tokens = int(usage.get("output_tokens") or 0)

        return CompletionResponse(
            content=text,
            usage=TokenUsage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens
            ),
            model=data.get("model") or model
        )
