"""Core module shared by every swarmlib component.

This package provides the error taxonomy, settings models, owned record
stores with their persistence contract, the outbound event channel, and
the interfaces of external collaborators.
"""

# Export error handling
from .errors import (
    BaseError,
    ErrorContext,
    NotFoundError,
    AgentNotFoundError,
    ProviderNotFoundError,
    PermissionDeniedError,
    OperationTimeoutError,
    OperationCancelledError,
    ProviderError,
    ParseError,
    StateError,
    ConfigurationError,
    ExecutionError
)

# Export settings
from .settings import (
    SwarmSettings,
    OrchestratorSettings,
    CommandSettings,
    CommandPermissions,
    MessagingSettings,
    ApprovalSettings,
    GatewaySettings,
    PersistenceSettings,
    ApiSettings,
    ModelPricing,
    load_settings
)

# Export stores and events
from .store import PersistenceBackend, MemoryPersistence, JsonFilePersistence, RecordStore
from .events import Event, EventChannel, Subscription

# Export external collaborator interfaces
from .services import (
    AutomationCommand,
    AutomationDriver,
    LoggingAutomationDriver,
    CostTracker,
    StaticPricingCostTracker,
    ResourceMonitor,
    NullResourceMonitor
)

__all__ = [
    # Errors
    "BaseError",
    "ErrorContext",
    "NotFoundError",
    "AgentNotFoundError",
    "ProviderNotFoundError",
    "PermissionDeniedError",
    "OperationTimeoutError",
    "OperationCancelledError",
    "ProviderError",
    "ParseError",
    "StateError",
    "ConfigurationError",
    "ExecutionError",

    # Settings
    "SwarmSettings",
    "OrchestratorSettings",
    "CommandSettings",
    "CommandPermissions",
    "MessagingSettings",
    "ApprovalSettings",
    "GatewaySettings",
    "PersistenceSettings",
    "ApiSettings",
    "ModelPricing",
    "load_settings",

    # Stores and events
    "PersistenceBackend",
    "MemoryPersistence",
    "JsonFilePersistence",
    "RecordStore",
    "Event",
    "EventChannel",
    "Subscription",

    # External collaborators
    "AutomationCommand",
    "AutomationDriver",
    "LoggingAutomationDriver",
    "CostTracker",
    "StaticPricingCostTracker",
    "ResourceMonitor",
    "NullResourceMonitor"
]
