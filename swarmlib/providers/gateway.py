"""Completion gateway.

Normalizes every registered LLM provider into one contract: an ordered list
of role-tagged messages goes in, text plus token usage comes out. Provider
records live in a ``RecordStore``; backend instances are built from the
provider's kind and initialized lazily on first use.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence, Union

from ..core.errors import (
    BaseError,
    ConfigurationError,
    ErrorContext,
    ProviderError,
    ProviderNotFoundError
)
from ..core.settings import GatewaySettings
from ..core.store import PersistenceBackend, RecordStore
from .constants import DEFAULT_API_URLS, BackendKind
from .llm import (
    ChatMessage,
    CompletionBackend,
    CompletionOptions,
    CompletionResponse,
    LLMProviderConfig
)
from .registry import backend_registry

logger = logging.getLogger(__name__)

# Provider config keys that configure the backend instead of the request body
_BACKEND_OPTION_KEYS = ("auth_header", "auth_scheme", "api_version", "log_requests", "log_responses")

MessageInput = Union[ChatMessage, Dict[str, Any]]


class CompletionGateway:
    """Registry and dispatcher for completion providers.

    This class provides:
    1. Provider registration, update and removal with persisted records
    2. A single ``complete`` call over every backend kind
    3. A non-raising ``test_provider`` probe

    Errors:
        - unknown provider id: ``ProviderNotFoundError``
        - disabled provider, transport, auth or payload failure: ``ProviderError``

    Calls are never retried here.
    """

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        persistence: Optional[PersistenceBackend] = None
    ):
        self.settings = settings or GatewaySettings()
        self.providers: RecordStore[LLMProviderConfig] = RecordStore(
            "providers", LLMProviderConfig, key=lambda p: p.id, persistence=persistence
        )
        self._backends: Dict[str, CompletionBackend] = {}
        # Backends passed in by the caller are not rebuilt on update
        self._injected: set = set()

    async def load(self) -> int:
        """Load provider records from persistence."""
        count = await self.providers.load()
        logger.info(f"Loaded {count} LLM provider(s)")
        return count

    async def register(
        self,
        provider: Union[LLMProviderConfig, Dict[str, Any]],
        backend: Optional[CompletionBackend] = None
    ) -> str:
        """Register a provider and return its id.

        Args:
            provider: Provider record (an id is generated when empty)
            backend: Optional backend instance to use instead of building one

        Returns:
            Provider id

        Raises:
            ConfigurationError: If no backend exists for the provider kind
        """
        if isinstance(provider, dict):
            provider = LLMProviderConfig.model_validate(provider)
        if not provider.id:
            provider = provider.model_copy(update={"id": f"{provider.kind.value}_{uuid.uuid4().hex[:12]}"})
        if not provider.name:
            provider = provider.model_copy(update={"name": provider.id})

        if backend is None:
            backend = self._build_backend(provider)
        else:
            self._injected.add(provider.id)

        old_backend = self._backends.get(provider.id)
        self._backends[provider.id] = backend
        await self.providers.put(provider)
        if old_backend is not None and old_backend is not backend:
            await old_backend.shutdown()

        logger.info(f"Registered LLM provider '{provider.name}' ({provider.id}, kind={provider.kind.value})")
        return provider.id

    def list_providers(self) -> List[LLMProviderConfig]:
        return self.providers.list()

    def get_provider(self, provider_id: str) -> LLMProviderConfig:
        provider = self.providers.get(provider_id)
        if provider is None:
            raise ProviderNotFoundError(provider_id)
        return provider

    async def update_provider(self, provider_id: str, updates: Dict[str, Any]) -> LLMProviderConfig:
        """Apply partial updates to a provider; the id never changes.

        The backend is rebuilt so new credentials or endpoints take effect.
        """
        async with self.providers.lock(provider_id):
            current = self.get_provider(provider_id)
            data = current.model_dump()
            data.update({k: v for k, v in updates.items() if k != "id"})
            updated = LLMProviderConfig.model_validate(data)

            if provider_id not in self._injected:
                old_backend = self._backends.pop(provider_id, None)
                self._backends[provider_id] = self._build_backend(updated)
                if old_backend is not None:
                    await old_backend.shutdown()

            await self.providers.put(updated)
            logger.info(f"Updated LLM provider {provider_id}")
            return updated

    async def delete_provider(self, provider_id: str) -> bool:
        backend = self._backends.pop(provider_id, None)
        self._injected.discard(provider_id)
        if backend is not None:
            await backend.shutdown()
        deleted = await self.providers.delete(provider_id)
        if deleted:
            logger.info(f"Deleted LLM provider {provider_id}")
        return deleted

    async def complete(
        self,
        provider_id: str,
        model: str,
        messages: Sequence[MessageInput],
        options: Optional[Union[CompletionOptions, Dict[str, Any]]] = None
    ) -> CompletionResponse:
        """Run one completion against a registered provider.

        Args:
            provider_id: Registered provider id
            model: Model name understood by the backend
            messages: Ordered role-tagged messages
            options: Optional generation options

        Returns:
            Normalized response; usage is zeroed when the backend has no metering

        Raises:
            ProviderNotFoundError: If the provider id is unknown
            ProviderError: If the provider is disabled or the backend call fails
        """
        provider = self.get_provider(provider_id)
        if not provider.enabled:
            raise ProviderError(
                message=f"LLM provider '{provider.name}' is disabled",
                provider_name=provider_id
            )

        if options is None:
            options = CompletionOptions()
        elif isinstance(options, dict):
            options = CompletionOptions.model_validate(options)
        chat = [m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m) for m in messages]

        backend = self._get_backend(provider)
        try:
            response = await backend.complete(model, chat, options)
        except ProviderError:
            raise
        except BaseError as e:
            raise ProviderError(
                message=f"Completion failed: {e.message}",
                provider_name=provider_id,
                cause=e
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Backend for provider {provider_id} raised unexpectedly: {e}", exc_info=True)
            raise ProviderError(
                message=f"Completion failed: {str(e)}",
                provider_name=provider_id,
                context=ErrorContext.create(model=model),
                cause=e
            )

        logger.debug(
            f"Completion from {provider_id}/{model}: {response.usage.total_tokens} tokens"
        )
        return response

    async def test_provider(self, provider_id: str) -> bool:
        """Probe a provider with a tiny completion; never raises."""
        provider = self.providers.get(provider_id)
        if provider is None:
            logger.warning(f"Cannot test unknown LLM provider {provider_id}")
            return False

        model = provider.models[0] if provider.models else ""
        try:
            response = await self.complete(
                provider_id,
                model,
                [ChatMessage(role="user", content="Hello, respond with OK")],
                CompletionOptions(max_tokens=self.settings.test_max_tokens)
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Provider test failed for {provider_id}: {e}")
            return False
        return bool(response.content)

    async def shutdown(self) -> None:
        """Close every backend."""
        backends = list(self._backends.values())
        for backend in backends:
            await backend.shutdown()
        logger.info(f"Completion gateway shut down ({len(backends)} backend(s))")

    def _get_backend(self, provider: LLMProviderConfig) -> CompletionBackend:
        backend = self._backends.get(provider.id)
        if backend is None:
            backend = self._build_backend(provider)
            self._backends[provider.id] = backend
        return backend

    def _build_backend(self, provider: LLMProviderConfig) -> CompletionBackend:
        backend_class = backend_registry.get(provider.kind)

        options = {k: provider.config[k] for k in _BACKEND_OPTION_KEYS if k in provider.config}
        extra_body = {k: v for k, v in provider.config.items() if k not in _BACKEND_OPTION_KEYS}

        api_base = provider.api_url or DEFAULT_API_URLS.get(provider.kind)
        if provider.kind == BackendKind.CUSTOM and not api_base:
            raise ConfigurationError(
                message="Custom providers need an api_url",
                config_key="api_url",
                context=ErrorContext.create(provider_id=provider.id)
            )

        settings = {
            "api_key": provider.api_key,
            "api_base": api_base,
            "timeout_seconds": self.settings.request_timeout,
            "default_temperature": self.settings.default_temperature,
            "default_max_tokens": self.settings.default_max_tokens,
            "extra_body": extra_body,
            **options
        }
        return backend_class(name=provider.id, settings=settings)
