"""Completion backend base class.

A backend adapts one wire dialect to the common contract: ordered
role-tagged messages in, text plus token usage out. HTTP backends share an
``aiohttp`` session opened lazily on first use.
"""

import asyncio
import json
import logging
from abc import abstractmethod
from typing import Any, Dict, List, Optional, TypeVar

import aiohttp

from ...core.errors import ErrorContext, ProviderError
from ..base import Provider, ProviderSettings
from .models import ChatMessage, CompletionOptions, CompletionResponse, TokenUsage

logger = logging.getLogger(__name__)


class CompletionBackendSettings(ProviderSettings):
    """Settings for completion backends.

    This class provides:
    1. Endpoint and credential configuration
    2. Default generation parameters
    3. Extra body fields merged into each request
    """
    default_temperature: float = 0.7
    default_max_tokens: int = 2000
    extra_body: Dict[str, Any] = {}


T = TypeVar('T', bound=CompletionBackendSettings)


class CompletionBackend(Provider[T]):
    """Base class for completion backends.

    Subclasses implement ``complete``; HTTP subclasses use ``_post_json``,
    which turns transport failures, non-2xx statuses and undecodable bodies
    into ``ProviderError``.
    """

    def __init__(self, name: str, settings: Optional[T] = None, provider_type: str = "llm"):
        super().__init__(name=name, settings=settings, provider_type=provider_type)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _initialize(self) -> None:
        timeout = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        self._session = aiohttp.ClientSession(timeout=timeout)

    async def _shutdown(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: List[ChatMessage],
        options: CompletionOptions
    ) -> CompletionResponse:
        """Produce a completion for ``messages``.

        Raises:
            ProviderError: On transport, authentication or payload failure
        """

    def _temperature(self, options: CompletionOptions) -> float:
        if options.temperature is not None:
            return options.temperature
        return self.settings.default_temperature

    def _max_tokens(self, options: CompletionOptions) -> int:
        return options.max_tokens or self.settings.default_max_tokens

    async def _post_json(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """POST a JSON body and return the decoded JSON response.

        Raises:
            ProviderError: If the request fails or the response is not a JSON object
        """
        if not self._initialized:
            await self.initialize()

        if self.settings.log_requests:
            logger.debug(f"Provider {self.name} POST {url}: {json.dumps(payload)[:500]}")

        try:
            async with self._session.post(url, json=payload, headers=headers or {}) as response:
                body = await response.text()
                if response.status >= 400:
                    raise ProviderError(
                        message=f"Backend returned HTTP {response.status}: {body[:200]}",
                        provider_name=self.name,
                        status=response.status,
                        context=ErrorContext.create(url=url)
                    )
        except ProviderError:
            raise
        except asyncio.TimeoutError as e:
            raise ProviderError(
                message=f"Backend request timed out after {self.settings.timeout_seconds}s",
                provider_name=self.name,
                context=ErrorContext.create(url=url),
                cause=e
            )
        except aiohttp.ClientError as e:
            raise ProviderError(
                message=f"Backend request failed: {str(e)}",
                provider_name=self.name,
                context=ErrorContext.create(url=url),
                cause=e
            )

        if self.settings.log_responses:
            logger.debug(f"Provider {self.name} response: {body[:500]}")

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise ProviderError(
                message="Backend returned a non-JSON body",
                provider_name=self.name,
                context=ErrorContext.create(url=url, body=body[:200]),
                cause=e
            )
        if not isinstance(data, dict):
            raise ProviderError(
                message="Backend returned JSON that is not an object",
                provider_name=self.name,
                context=ErrorContext.create(url=url)
            )
        return data


def usage_from_openai(data: Dict[str, Any]) -> TokenUsage:
    """Read an OpenAI-style ``usage`` block; missing fields count as zero."""
    usage = data.get("usage") or {}
    prompt_tokens = int(usage.get("prompt_tokens") or 0)
    completion_tokens = int(usage.get("completion_tokens") or 0)
    total_tokens = int(usage.get("total_tokens") or (prompt_tokens + completion_tokens))
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens
    )
