"""
Exception hierarchy for cloud discovery

CloudDiscoveryError
├── ConfigurationError        raised before orchestration starts
│   ├── UnsupportedProviderError
│   └── InvalidFilterError
├── ConnectorError            raised by connectors, recorded per provider
├── OperationCancelled        raised inside a cancelled Context
└── DiscoveryInterrupted      carries the partial DiscoveryResult
    ├── DiscoveryCancelledError
    └── FatalDiscoveryError
"""
from typing import Any, Dict, Optional


class CloudDiscoveryError(Exception):
    """Base class for all cloud discovery errors"""

    def __init__(self,
                 message: str,
                 cause: Optional[BaseException] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.details = details or {}

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message}: {self.cause}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging"""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'cause': str(self.cause) if self.cause else None,
            'details': self.details
        }


class ConfigurationError(CloudDiscoveryError):
    """Invalid options or configuration; aborts the whole call"""


class UnsupportedProviderError(ConfigurationError):
    """Provider name is unknown or has no registered connector"""

    def __init__(self, provider: Any, reason: str = "no connector registered"):
        super().__init__(f"Unsupported provider '{provider}': {reason}",
                         details={'provider': str(provider)})
        self.provider = provider


class InvalidFilterError(ConfigurationError):
    """Malformed resource filter"""

    def __init__(self, message: str, field: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause=cause, details={'field': field})
        self.field = field


class ConnectorError(CloudDiscoveryError):
    """
    Error raised by a provider connector.

    Connectors may set region/resource_type to scope the error, and severity
    to 'warning', 'error' (default) or 'fatal'.
    """

    def __init__(self,
                 message: str,
                 region: Optional[str] = None,
                 resource_type: Optional[str] = None,
                 severity: Any = 'error',
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause=cause,
                         details={'region': region, 'resource_type': resource_type})
        self.region = region
        self.resource_type = resource_type
        self.severity = severity


class OperationCancelled(CloudDiscoveryError):
    """The Context an operation runs under was cancelled or timed out"""

    def __init__(self, reason: str = "cancelled"):
        super().__init__(reason)
        self.reason = reason


class DiscoveryInterrupted(CloudDiscoveryError):
    """A run stopped early; `result` holds what was assembled so far"""

    def __init__(self, message: str, result: Any):
        super().__init__(message)
        self.result = result


class DiscoveryCancelledError(DiscoveryInterrupted):
    """The caller cancelled the run"""


class FatalDiscoveryError(DiscoveryInterrupted):
    """A connector reported a fatal error"""
