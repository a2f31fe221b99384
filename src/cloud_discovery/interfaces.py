"""
Contracts for the collaborators the discovery engine plugs together

- ProviderConnector: one per cloud provider, performs the vendor API calls
- CredentialProvider: consulted by connectors, never by the engine
- Cache: memoizes whole DiscoveryResults by options fingerprint
- EventHandler: observer hooks fired at orchestration milestones
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from .context import Context
from .models import (
    CloudProvider, DiscoveryError, DiscoveryOptions, DiscoveryResult,
    ProviderDiscoveryOptions, Resource
)


class ProviderConnector(ABC):
    """
    Binding between the engine and one cloud provider.

    Implementations should check `ctx.cancelled` (or call
    `ctx.raise_if_cancelled()`) between API calls, raise ConnectorError to
    scope a failure to a region or resource type, and use `ctx.warn` for
    partial coverage that should not fail the provider.
    """

    @property
    @abstractmethod
    def provider(self) -> CloudProvider:
        """The provider this connector serves"""

    def connect(self, ctx: Context) -> None:
        """Establish sessions or clients; no-op by default"""

    def disconnect(self, ctx: Context) -> None:
        """Release whatever connect() acquired; no-op by default"""

    @abstractmethod
    def validate_credentials(self, ctx: Context) -> None:
        """Raise if the configured credentials are not usable"""

    @abstractmethod
    def discover_resources(self, ctx: Context, options: ProviderDiscoveryOptions) -> List[Resource]:
        """Enumerate resources matching the provider-scoped options"""

    @abstractmethod
    def get_regions(self, ctx: Context) -> List[str]:
        pass

    @abstractmethod
    def get_resource_types(self, ctx: Context) -> List[str]:
        pass

    def get_resources_by_type(self, ctx: Context, resource_type: str, region: str) -> List[Resource]:
        """Enumerate a single resource type in a single region"""
        options = ProviderDiscoveryOptions(
            provider=self.provider,
            regions=(region,),
            resource_types=(resource_type,),
        )
        return self.discover_resources(ctx, options)


class CredentialProvider(ABC):
    """Supplies credentials to a connector"""

    @abstractmethod
    def get_credentials(self) -> Any:
        pass

    @abstractmethod
    def validate_credentials(self) -> None:
        """Raise if the credentials cannot be used"""

    @abstractmethod
    def refresh_credentials(self) -> Any:
        pass


class Cache(ABC):
    """
    Memoization of complete discovery results.

    Get/set are treated as independent atomic calls; no lock is held across
    them, so two concurrent misses may both store a result.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[DiscoveryResult]:
        """Return the cached result, or None on a miss or after expiry"""

    @abstractmethod
    def set(self, key: str, result: DiscoveryResult, ttl: float) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        """Keys of entries that have not expired"""


class EventHandler:
    """
    Observer for discovery milestones.

    Every hook is a no-op; override the ones you need. Hooks may be called
    from worker threads, but the engine serializes calls so a handler never
    runs concurrently with itself. Exceptions raised here are logged and
    discarded.
    """

    def on_discovery_start(self, options: DiscoveryOptions) -> None:
        pass

    def on_discovery_complete(self, result: DiscoveryResult) -> None:
        pass

    def on_provider_start(self, provider: CloudProvider) -> None:
        pass

    def on_provider_complete(self, provider: CloudProvider, resource_count: int,
                             error: Optional[DiscoveryError]) -> None:
        pass

    def on_resource_discovered(self, resource: Resource) -> None:
        pass

    def on_error(self, error: DiscoveryError) -> None:
        pass

    def on_cache_hit(self, key: str, result: DiscoveryResult) -> None:
        pass
