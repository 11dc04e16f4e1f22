"""Error classes with structured error context.

This module provides the error taxonomy shared by every swarmlib component:
a base error carrying an immutable context and an optional cause, plus the
concrete error kinds raised by the orchestrator and its collaborators.
"""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorContext:
    """Structured context information attached to an error.

    This class provides:
    1. Structured context information for errors
    2. Clean serialization for logging and reporting
    3. Immutable context with builder pattern
    """

    def __init__(self, context_data: Optional[Dict[str, Any]] = None):
        """Initialize error context.

        Args:
            context_data: Optional initial context data
        """
        self._data = dict(context_data or {})

    @classmethod
    def create(cls, **kwargs) -> 'ErrorContext':
        """Create a new error context with the given data.

        Args:
            **kwargs: Context data

        Returns:
            New ErrorContext instance
        """
        return cls(kwargs)

    def add(self, **kwargs) -> 'ErrorContext':
        """Create a new context with additional data.

        Args:
            **kwargs: Additional context data

        Returns:
            New ErrorContext instance with combined data
        """
        new_data = dict(self._data)
        new_data.update(kwargs)
        return ErrorContext(new_data)

    @property
    def data(self) -> Dict[str, Any]:
        """Get the context data dictionary."""
        return dict(self._data)

    def __str__(self) -> str:
        return f"ErrorContext({self._data})"


class BaseError(Exception):
    """Base class for all swarmlib errors.

    This class provides:
    1. Structured error information with context
    2. Clean serialization for logging and reporting
    3. Cause tracking for nested errors
    """

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        """Initialize error.

        Args:
            message: Error message
            context: Optional error context
            cause: Optional cause exception
        """
        self.message = message
        self.context = context or ErrorContext()
        self.cause = cause

        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary.

        Returns:
            Dictionary representation of error
        """
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "context": self.context.data,
            "cause": str(self.cause) if self.cause else None
        }

    def __str__(self) -> str:
        cause_str = f" (caused by: {self.cause})" if self.cause else ""
        return f"{self.__class__.__name__}: {self.message}{cause_str}"


def _with_context(context: Optional[ErrorContext], **values: Any) -> ErrorContext:
    """Merge non-empty keyword values into a (possibly missing) context."""
    values = {k: v for k, v in values.items() if v is not None}
    if context is None:
        return ErrorContext(values)
    return context.add(**values) if values else context


class NotFoundError(BaseError):
    """Raised when an agent, provider, execution or prompt does not exist."""

    def __init__(
        self,
        message: str,
        resource_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        """Initialize not-found error.

        Args:
            message: Error message
            resource_id: Identifier that was looked up
            resource_type: Kind of registry entry (agent, provider, ...)
            context: Optional error context
            cause: Optional cause exception
        """
        self.resource_id = resource_id
        self.resource_type = resource_type
        context = _with_context(context, resource_id=resource_id, resource_type=resource_type)
        super().__init__(message, context, cause)


class AgentNotFoundError(NotFoundError):
    """Raised when an agent id is unknown."""

    def __init__(self, agent_id: str, context: Optional[ErrorContext] = None):
        super().__init__(
            message=f"Agent '{agent_id}' not found",
            resource_id=agent_id,
            resource_type="agent",
            context=context
        )


class ProviderNotFoundError(NotFoundError):
    """Raised when a completion provider id is unknown."""

    def __init__(self, provider_id: str, context: Optional[ErrorContext] = None):
        super().__init__(
            message=f"LLM provider '{provider_id}' not found",
            resource_id=provider_id,
            resource_type="provider",
            context=context
        )


class PermissionDeniedError(BaseError):
    """Raised when a command or shared-memory operation is not authorized.

    Attributes:
        reason: Human readable reason for the rejection
    """

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        self.reason = reason or message
        super().__init__(message, _with_context(context, reason=reason), cause)


class OperationTimeoutError(BaseError):
    """Raised when a command or prompt exceeded its time budget."""

    def __init__(
        self,
        message: str,
        timeout: Optional[float] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        self.timeout = timeout
        super().__init__(message, _with_context(context, timeout=timeout), cause)


class OperationCancelledError(BaseError):
    """Raised when a command is killed or a prompt is cancelled."""


class ProviderError(BaseError):
    """Raised when a completion backend fails (transport, auth, bad payload).

    This class provides:
    1. Structured provider error information
    2. Clean access to provider context
    """

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        status: Optional[int] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        """Initialize provider error.

        Args:
            message: Error message
            provider_name: Optional provider id or name
            status: Optional HTTP status returned by the backend
            context: Optional error context
            cause: Optional cause exception
        """
        self.provider_name = provider_name
        self.status = status
        context = _with_context(context, provider_name=provider_name, status=status)
        super().__init__(message, context, cause)


class ParseError(BaseError):
    """Raised when a structured decision or automation payload is malformed."""

    def __init__(
        self,
        message: str,
        payload: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        if payload is not None and len(payload) > 200:
            payload = payload[:200] + "..."
        super().__init__(message, _with_context(context, payload=payload), cause)


class StateError(BaseError):
    """Raised when a record is asked to make an illegal state transition."""

    def __init__(
        self,
        message: str,
        state_name: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message, _with_context(context, state_name=state_name), cause)


class ConfigurationError(BaseError):
    """Raised when configuration is invalid.

    This class provides:
    1. Structured configuration error information
    2. Clean access to configuration context
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message, _with_context(context, config_key=config_key), cause)


class ExecutionError(BaseError):
    """Raised when an operation runs but does not succeed (e.g. non-zero exit)."""
