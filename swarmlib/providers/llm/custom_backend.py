"""Backend for self-described custom endpoints.

The provider's extra config is merged into every request body. Responses
are accepted in either the chat completions shape
(``choices[0].message.content``) or as a top-level ``content`` string.
"""

import logging
from typing import List

from ...core.errors import ErrorContext, ProviderError
from ..constants import BackendKind
from ..decorators import completion_backend
from .base import CompletionBackend, CompletionBackendSettings, usage_from_openai
from .models import ChatMessage, CompletionOptions, CompletionResponse

logger = logging.getLogger(__name__)


class CustomBackendSettings(CompletionBackendSettings):
    """Settings for custom endpoints; ``api_base`` is the full request URL."""
    auth_header: str = "Authorization"
    auth_scheme: str = "Bearer"


@completion_backend(BackendKind.CUSTOM)
class CustomBackend(CompletionBackend[CustomBackendSettings]):
    """Backend posting to an arbitrary JSON endpoint."""

    async def complete(
        self,
        model: str,
        messages: List[ChatMessage],
        options: CompletionOptions
    ) -> CompletionResponse:
        if not self.settings.api_base:
            raise ProviderError(
                message="Custom provider has no endpoint URL",
                provider_name=self.name
            )

        payload = {
            "model": model,
            "messages": [m.model_dump() for m in messages],
            "temperature": self._temperature(options),
            "max_tokens": self._max_tokens(options),
        }
        payload.update(self.settings.extra_body)

        headers = {}
        if self.settings.api_key:
            scheme = self.settings.auth_scheme
            headers[self.settings.auth_header] = f"{scheme} {self.settings.api_key}" if scheme else self.settings.api_key

        data = await self._post_json(self.settings.api_base, payload, headers)

        content = None
        choices = data.get("choices")
        if isinstance(choices, list) and choices:
            message = choices[0].get("message") or {}
            content = message.get("content")
        if content is None:
            content = data.get("content")
        if not isinstance(content, str):
            raise ProviderError(
                message="Response carries neither choices[0].message.content nor content",
                provider_name=self.name,
                context=ErrorContext.create(model=model, keys=sorted(data.keys()))
            )

        return CompletionResponse(
            content=content,
            usage=usage_from_openai(data),
            model=data.get("model") or model
        )
