"""Decorators for registering completion backends."""

from .constants import BackendKind
from .registry import backend_registry


def completion_backend(*kinds: BackendKind):
    """Register a class as the backend for one or more provider kinds.

    Args:
        *kinds: Provider kinds the class serves

    Returns:
        Decorator function
    """
    if not kinds:
        raise ValueError("completion_backend requires at least one provider kind")

    def decorator(cls):
        for kind in kinds:
            backend_registry.register(kind, cls)
        return cls

    return decorator
