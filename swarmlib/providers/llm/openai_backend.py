"""OpenAI-compatible chat completions backend.

Serves the ``openai``, ``deepseek`` and ``local`` provider kinds, which all
speak the ``/chat/completions`` dialect and differ only in their default
endpoint.
"""

import logging
from typing import List, Optional

from ...core.errors import ErrorContext, ProviderError
from ..constants import BackendKind
from ..decorators import completion_backend
from .base import CompletionBackend, CompletionBackendSettings, usage_from_openai
from .models import ChatMessage, CompletionOptions, CompletionResponse

logger = logging.getLogger(__name__)


class OpenAIBackendSettings(CompletionBackendSettings):
    """Settings for OpenAI-compatible backends."""
    api_base: Optional[str] = "https://api.openai.com/v1"


@completion_backend(BackendKind.OPENAI, BackendKind.DEEPSEEK, BackendKind.LOCAL)
class OpenAIBackend(CompletionBackend[OpenAIBackendSettings]):
    """Backend for any server implementing the OpenAI chat completions API."""

    def _endpoint(self) -> str:
        base = (self.settings.api_base or "").rstrip("/")
        if base.endswith("/chat/completions"):
            return base
        return f"{base}/chat/completions"

    async def complete(
        self,
        model: str,
        messages: List[ChatMessage],
        options: CompletionOptions
    ) -> CompletionResponse:
        payload = {
            "model": model,
            "messages": [m.model_dump() for m in messages],
            "temperature": self._temperature(options),
            "max_tokens": self._max_tokens(options),
        }
        for field in ("top_p", "frequency_penalty", "presence_penalty"):
            value = getattr(options, field)
            if value is not None:
                payload[field] = value
        payload.update(self.settings.extra_body)

        headers = {}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"

        data = await self._post_json(self._endpoint(), payload, headers)

        choices = data.get("choices")
        if not isinstance(choices, list):
            raise ProviderError(
                message="Response has no 'choices' list",
                provider_name=self.name,
                context=ErrorContext.create(model=model)
            )
        content = ""
        if choices:
            message = choices[0].get("message") or {}
            content = message.get("content") or ""

        return CompletionResponse(
            content=content,
            usage=usage_from_openai(data),
            model=data.get("model") or model
        )
