"""
Cloud Discovery - concurrent multi-cloud resource inventory
"""

__version__ = "0.1.0"

from .cache import FileCache, MemoryCache
from .context import Context
from .engine import DiscoveryEngine
from .events import EventDispatcher, LoggingEventHandler, ProgressEventHandler
from .exceptions import (
    CloudDiscoveryError, ConfigurationError, ConnectorError, DiscoveryCancelledError,
    DiscoveryInterrupted, FatalDiscoveryError, InvalidFilterError, OperationCancelled,
    UnsupportedProviderError
)
from .filters import apply_filters, matches, parse_filter
from .interfaces import Cache, CredentialProvider, EventHandler, ProviderConnector
from .models import (
    CloudProvider, DiscoveryError, DiscoveryMetadata, DiscoveryOptions, DiscoveryResult,
    FilterOperator, FilterType, ProviderDiscoveryOptions, Resource, ResourceFilter, Severity
)

__all__ = [
    "DiscoveryEngine",
    "Context",
    "MemoryCache",
    "FileCache",
    "EventDispatcher",
    "LoggingEventHandler",
    "ProgressEventHandler",
    "Cache",
    "CredentialProvider",
    "EventHandler",
    "ProviderConnector",
    "CloudProvider",
    "DiscoveryError",
    "DiscoveryMetadata",
    "DiscoveryOptions",
    "DiscoveryResult",
    "FilterOperator",
    "FilterType",
    "ProviderDiscoveryOptions",
    "Resource",
    "ResourceFilter",
    "Severity",
    "apply_filters",
    "matches",
    "parse_filter",
    "CloudDiscoveryError",
    "ConfigurationError",
    "ConnectorError",
    "DiscoveryCancelledError",
    "DiscoveryInterrupted",
    "FatalDiscoveryError",
    "InvalidFilterError",
    "OperationCancelled",
    "UnsupportedProviderError",
]
