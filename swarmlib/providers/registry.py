"""Backend class registry.

Maps each provider kind to the backend class that speaks its wire dialect.
Backend modules register themselves with the ``completion_backend``
decorator when imported.
"""

import logging
from typing import Dict, Type, Union

from ..core.errors import ConfigurationError, ErrorContext
from .constants import BackendKind

logger = logging.getLogger(__name__)


class BackendRegistry:
    """Registry of completion backend classes keyed by provider kind.

    This class provides:
    1. Kind-based lookup of backend classes
    2. Re-registration for tests and custom dialects
    """

    def __init__(self):
        self._classes: Dict[BackendKind, Type] = {}

    def register(self, kind: Union[BackendKind, str], backend_class: Type) -> None:
        """Register ``backend_class`` for ``kind``, replacing any previous entry."""
        kind = BackendKind(kind)
        if kind in self._classes and self._classes[kind] is not backend_class:
            logger.warning(
                f"Replacing backend for kind '{kind.value}': "
                f"{self._classes[kind].__name__} -> {backend_class.__name__}"
            )
        self._classes[kind] = backend_class
        logger.debug(f"Registered backend {backend_class.__name__} for kind '{kind.value}'")

    def get(self, kind: Union[BackendKind, str]) -> Type:
        """Get the backend class for ``kind``.

        Raises:
            ConfigurationError: If no backend is registered for the kind
        """
        try:
            kind = BackendKind(kind)
        except ValueError:
            raise ConfigurationError(
                message=f"Unknown provider kind: {kind}",
                config_key="kind",
                context=ErrorContext.create(kind=str(kind))
            )
        if kind not in self._classes:
            raise ConfigurationError(
                message=f"No backend registered for provider kind '{kind.value}'",
                config_key="kind",
                context=ErrorContext.create(kind=kind.value)
            )
        return self._classes[kind]


backend_registry = BackendRegistry()
