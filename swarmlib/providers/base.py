"""Provider base implementation with configuration and lifecycle management.

This module provides the foundation for completion backends with typed
settings, lazy one-time initialization and clean shutdown.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, TypeVar, Union

from pydantic import BaseModel

from ..core.errors import ProviderError

logger = logging.getLogger(__name__)


class ProviderSettings(BaseModel):
    """Base settings for providers.

    This class provides:
    1. Common configuration for all providers
    2. Authentication settings
    3. Timeout and logging options
    """

    # Authentication settings
    api_key: Optional[str] = None
    api_base: Optional[str] = None

    # Timeout settings
    timeout_seconds: float = 120.0

    # Logging settings
    log_requests: bool = False
    log_responses: bool = False


T = TypeVar('T', bound=ProviderSettings)


class Provider(ABC, Generic[T]):
    """Base class for all providers with lifecycle management.

    This class provides:
    1. Consistent initialization and cleanup pattern
    2. Configuration via settings models
    3. Clean error handling

    Operations are never retried here; retry policy belongs to callers.
    """

    def __init__(
        self,
        name: str,
        settings: Optional[Union[T, Dict[str, Any]]] = None,
        provider_type: Optional[str] = None
    ):
        """Initialize provider.

        Args:
            name: Unique provider name
            settings: Provider settings (model instance or dict)
            provider_type: Optional provider type for categorization
        """
        self.name = name
        self.provider_type = provider_type or self.__class__.__name__
        self._initialized = False
        self._setup_lock = asyncio.Lock()

        settings_type = self._settings_type()
        if settings is None:
            self.settings = settings_type()
        elif isinstance(settings, dict):
            self.settings = settings_type(**settings)
        elif isinstance(settings, settings_type):
            self.settings = settings
        else:
            raise TypeError(
                f"Invalid settings type provided. Expected dict or {settings_type.__name__}, "
                f"got {type(settings).__name__}"
            )

        logger.debug(f"Created provider: {name} ({self.provider_type})")

    @classmethod
    def _settings_type(cls) -> type:
        """Resolve the settings class from the ``Provider[Settings]`` generic parameter."""
        for klass in cls.__mro__:
            for base in getattr(klass, "__orig_bases__", ()):
                args = getattr(base, "__args__", ())
                if args and isinstance(args[0], type) and issubclass(args[0], ProviderSettings):
                    return args[0]
        raise TypeError(
            f"Provider class {cls.__name__} must specify settings type as a generic parameter. "
            f"Example: class MyProvider(Provider[MySettings]): ..."
        )

    async def initialize(self) -> None:
        """Initialize the provider once.

        Raises:
            ProviderError: If initialization fails
        """
        if self._initialized:
            return

        async with self._setup_lock:
            if self._initialized:
                return

            try:
                await self._initialize()
                self._initialized = True
                logger.info(f"Provider '{self.name}' initialized successfully")
            except Exception as e:
                logger.error(f"Failed to initialize provider '{self.name}': {str(e)}")
                raise ProviderError(
                    message=f"Failed to initialize provider: {str(e)}",
                    provider_name=self.name,
                    cause=e
                )

    async def shutdown(self) -> None:
        """Close provider resources.

        Shutdown errors are logged and swallowed so that shutting down many
        providers is never interrupted by one of them.
        """
        if not self._initialized:
            return

        try:
            await self._shutdown()
            self._initialized = False
            logger.info(f"Provider '{self.name}' shut down successfully")
        except Exception as e:
            logger.error(f"Error shutting down provider '{self.name}': {str(e)}")

    @abstractmethod
    async def _initialize(self) -> None:
        """Concrete initialization logic implemented by subclasses."""
        pass

    async def _shutdown(self) -> None:
        """Concrete shutdown logic implemented by subclasses.

        Default implementation does nothing.
        """
        pass

