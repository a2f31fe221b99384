"""
Event fan-out to registered observers
"""
import logging
import threading
from typing import Iterable, List, Optional

from tqdm import tqdm

from .interfaces import EventHandler
from .models import CloudProvider, DiscoveryError, DiscoveryOptions, DiscoveryResult, Resource

logger = logging.getLogger(__name__)


class EventDispatcher:
    """
    Ordered list of event handlers.

    Handlers are invoked synchronously in registration order under a lock.
    A handler that raises is logged at warning level and skipped; the
    exception never reaches the caller.
    """

    def __init__(self, handlers: Optional[Iterable[EventHandler]] = None):
        self._handlers: List[EventHandler] = list(handlers or [])
        self._lock = threading.RLock()

    def add_handler(self, handler: EventHandler) -> None:
        with self._lock:
            self._handlers.append(handler)

    def remove_handler(self, handler: EventHandler) -> None:
        with self._lock:
            self._handlers.remove(handler)

    @property
    def handlers(self) -> List[EventHandler]:
        with self._lock:
            return list(self._handlers)

    def emit(self, hook: str, *args) -> None:
        with self._lock:
            for handler in self._handlers:
                try:
                    getattr(handler, hook)(*args)
                except Exception as e:
                    logger.warning(f"Event handler {type(handler).__name__}.{hook} failed: {e}")


class LoggingEventHandler(EventHandler):
    """Writes discovery milestones to the log"""

    def __init__(self, logger_name: str = 'cloud_discovery.events'):
        self.logger = logging.getLogger(logger_name)

    def on_discovery_start(self, options: DiscoveryOptions) -> None:
        providers = ', '.join(p.value for p in options.providers)
        self.logger.info(f"Starting discovery for providers: {providers} "
                         f"(max_concurrency={options.max_concurrency}, timeout={options.timeout}s)")

    def on_discovery_complete(self, result: DiscoveryResult) -> None:
        meta = result.metadata
        self.logger.info(f"Discovery complete: {meta.resource_count} resources, "
                         f"{meta.error_count} errors, {meta.warning_count} warnings "
                         f"in {meta.duration:.2f}s")

    def on_provider_start(self, provider: CloudProvider) -> None:
        self.logger.info(f"Discovering {provider.value} resources")

    def on_provider_complete(self, provider: CloudProvider, resource_count: int,
                             error: Optional[DiscoveryError]) -> None:
        if error:
            self.logger.warning(f"{provider.value} discovery failed: {error.message}")
        else:
            self.logger.info(f"Found {resource_count} {provider.value} resources")

    def on_resource_discovered(self, resource: Resource) -> None:
        self.logger.debug(f"Discovered {resource.provider.value}/{resource.type}/{resource.id}")

    def on_error(self, error: DiscoveryError) -> None:
        level = logging.WARNING if error.is_warning else logging.ERROR
        location = '/'.join(x for x in (error.provider.value, error.region, error.resource_type) if x)
        self.logger.log(level, f"[{location}] {error.message}")

    def on_cache_hit(self, key: str, result: DiscoveryResult) -> None:
        self.logger.info(f"Using cached discovery result ({result.metadata.resource_count} resources)")


class ProgressEventHandler(EventHandler):
    """Progress bar advancing once per finished provider"""

    def __init__(self, disable: bool = False, **tqdm_kwargs):
        self.disable = disable
        self.tqdm_kwargs = tqdm_kwargs
        self.bar: Optional[tqdm] = None

    def on_discovery_start(self, options: DiscoveryOptions) -> None:
        self.bar = tqdm(total=len(options.providers), desc='Discovering',
                        unit='provider', disable=self.disable, **self.tqdm_kwargs)

    def on_provider_complete(self, provider: CloudProvider, resource_count: int,
                             error: Optional[DiscoveryError]) -> None:
        if self.bar is None:
            return
        self.bar.set_postfix_str(f"{provider.value}: {'failed' if error else resource_count}")
        self.bar.update(1)

    def on_discovery_complete(self, result: DiscoveryResult) -> None:
        if self.bar is not None:
            self.bar.close()
            self.bar = None
