"""
Discovery engine - fans a request out to provider connectors and merges the results
"""
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .context import CANCELLED, DEADLINE_EXCEEDED, Context
from .events import EventDispatcher
from .exceptions import (
    ConnectorError, DiscoveryCancelledError, FatalDiscoveryError,
    OperationCancelled, UnsupportedProviderError
)
from .filters import apply_filters
from .interfaces import Cache, EventHandler, ProviderConnector
from .models import (
    CloudProvider, DiscoveryError, DiscoveryMetadata, DiscoveryOptions,
    DiscoveryResult, ProviderDiscoveryOptions, Resource, Severity, utcnow
)
from .utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)

# How often the coordinator re-checks cancellation and per-call deadlines
_POLL_INTERVAL = 0.05

_FATAL = "fatal"


@dataclass
class _ProviderCall:
    """Bookkeeping for one submitted connector call"""
    provider: CloudProvider
    connector: ProviderConnector
    options: ProviderDiscoveryOptions
    context: Optional[Context] = None
    started_at: Optional[float] = None


@dataclass
class _ProviderOutcome:
    provider: CloudProvider
    resources: List[Resource] = field(default_factory=list)
    errors: List[DiscoveryError] = field(default_factory=list)

    @property
    def failure(self) -> Optional[DiscoveryError]:
        """First non-warning error, if the provider failed"""
        return next((e for e in self.errors if not e.is_warning), None)

    @property
    def is_fatal(self) -> bool:
        return any(e.severity == Severity.FATAL for e in self.errors)


def _timeout_message(timeout: float) -> str:
    return f"timed out after {timeout:g}s"


def _severity(value) -> Severity:
    try:
        return Severity.parse(value)
    except ValueError:
        logger.warning(f"Unknown error severity {value!r}, recording as error")
        return Severity.ERROR


class DiscoveryEngine:
    """
    Orchestrates resource discovery across registered provider connectors.

    Each provider in a request is discovered on a bounded thread pool; one
    provider failing, timing out or being cancelled never removes another
    provider's resources from the result. Results may be memoized in a Cache
    keyed by the options fingerprint.
    """

    def __init__(self,
                 cache: Optional[Cache] = None,
                 event_handlers: Optional[Iterable[EventHandler]] = None,
                 connectors: Optional[Iterable[ProviderConnector]] = None):
        """
        Initialize the engine

        Args:
            cache: Optional result cache consulted when options.use_cache is set
            event_handlers: Observers notified of discovery milestones
            connectors: Connectors to register up front
        """
        self.cache = cache
        self.events = EventDispatcher(event_handlers)
        self._connectors: Dict[CloudProvider, ProviderConnector] = {}
        self._lock = threading.Lock()

        for connector in connectors or []:
            self.register_connector(connector)

    def register_connector(self, connector: ProviderConnector) -> None:
        """Register a connector, replacing any existing one for the same provider"""
        provider = CloudProvider.parse(connector.provider)
        with self._lock:
            replaced = provider in self._connectors
            self._connectors[provider] = connector
        action = "Replaced" if replaced else "Registered"
        logger.info(f"{action} connector for provider: {provider.value}")

    def add_event_handler(self, handler: EventHandler) -> None:
        self.events.add_handler(handler)

    def list_providers(self) -> List[CloudProvider]:
        with self._lock:
            return sorted(self._connectors, key=lambda p: p.value)

    def get_connector(self, provider: Union[str, CloudProvider]) -> ProviderConnector:
        provider = CloudProvider.parse(provider)
        with self._lock:
            connector = self._connectors.get(provider)
        if connector is None:
            raise UnsupportedProviderError(provider.value)
        return connector

    def _snapshot(self, providers: Sequence[CloudProvider]) -> Dict[CloudProvider, ProviderConnector]:
        """Resolve every requested provider before any connector is called"""
        with self._lock:
            registry = dict(self._connectors)
        missing = [p for p in providers if p not in registry]
        if missing:
            raise UnsupportedProviderError(missing[0].value)
        return {p: registry[p] for p in providers}

    def validate_credentials(self,
                             providers: Optional[Sequence[Union[str, CloudProvider]]] = None,
                             ctx: Optional[Context] = None) -> Dict[CloudProvider, Optional[str]]:
        """
        Check credentials for each provider

        Returns:
            Mapping of provider to error message, None where credentials are valid
        """
        ctx = ctx or Context()
        targets = [CloudProvider.parse(p) for p in providers] if providers else self.list_providers()
        connectors = self._snapshot(targets)

        results: Dict[CloudProvider, Optional[str]] = {}
        for provider, connector in connectors.items():
            try:
                connector.validate_credentials(ctx)
                results[provider] = None
                logger.info(f"Credentials valid for {provider.value}")
            except Exception as e:
                logger.warning(f"Credential validation failed for {provider.value}: {e}")
                results[provider] = str(e)
        return results

    def get_provider_regions(self, provider: Union[str, CloudProvider],
                             ctx: Optional[Context] = None) -> List[str]:
        return self.get_connector(provider).get_regions(ctx or Context())

    def get_resource_types(self, provider: Union[str, CloudProvider],
                           ctx: Optional[Context] = None) -> List[str]:
        return self.get_connector(provider).get_resource_types(ctx or Context())

    def get_resources_by_type(self, provider: Union[str, CloudProvider], resource_type: str,
                              region: str, ctx: Optional[Context] = None) -> List[Resource]:
        return self.get_connector(provider).get_resources_by_type(ctx or Context(), resource_type, region)

    @log_execution_time
    def discover(self, options: DiscoveryOptions, ctx: Optional[Context] = None) -> DiscoveryResult:
        """
        Discover resources for every provider in options

        Args:
            options: Request scope, filters and orchestration limits
            ctx: Cancellation scope for the whole run

        Returns:
            Merged DiscoveryResult, resources grouped in options.providers order

        Raises:
            ConfigurationError: Invalid options or an unregistered provider
            DiscoveryCancelledError: ctx was cancelled; `.result` holds the partial result
            FatalDiscoveryError: A connector reported a fatal error; `.result` holds the partial result
        """
        ctx = ctx or Context()
        options.validate()
        connectors = self._snapshot(options.providers)

        cache_key = None
        if options.use_cache and self.cache is not None:
            cache_key = options.fingerprint()
            cached = self._cache_get(cache_key)
            if cached is not None:
                logger.info(f"Cache hit for discovery request {cache_key[:12]}")
                self.events.emit('on_cache_hit', cache_key, cached)
                return cached

        start_time = utcnow()
        self.events.emit('on_discovery_start', options)

        outcomes, interruption = self._fan_out(ctx, options, connectors)

        resources: List[Resource] = []
        errors: List[DiscoveryError] = []
        for provider in options.providers:
            outcome = outcomes[provider]
            resources.extend(outcome.resources)
            errors.extend(outcome.errors)

        filters = options.effective_filters()
        resources = apply_filters(resources, filters)
        for resource in resources:
            self.events.emit('on_resource_discovered', resource)

        metadata = DiscoveryMetadata.build(start_time, utcnow(), resources, errors, filters)
        result = DiscoveryResult(resources=resources, errors=errors, metadata=metadata)

        if cache_key is not None and interruption is None:
            self._cache_set(cache_key, result, options.cache_ttl)

        self.events.emit('on_discovery_complete', result)

        if interruption == _FATAL:
            raise FatalDiscoveryError("Discovery aborted by a fatal provider error", result)
        if interruption is not None:
            raise DiscoveryCancelledError(f"Discovery {interruption}", result)
        return result

    def _fan_out(self, ctx: Context, options: DiscoveryOptions,
                 connectors: Dict[CloudProvider, ProviderConnector]
                 ) -> Tuple[Dict[CloudProvider, _ProviderOutcome], Optional[str]]:
        """
        Run one connector call per provider on a bounded pool

        Returns:
            Outcome per provider and the interruption reason, None if the run finished
        """
        run_ctx = ctx.child()
        outcomes: Dict[CloudProvider, _ProviderOutcome] = {}
        calls: Dict[Future, _ProviderCall] = {}
        interruption: Optional[str] = None

        executor = ThreadPoolExecutor(max_workers=options.max_concurrency,
                                      thread_name_prefix='discovery')
        try:
            for provider in options.providers:
                call = _ProviderCall(provider, connectors[provider], options.for_provider(provider))
                calls[executor.submit(self._run_call, run_ctx, call, options.timeout)] = call
            pending = set(calls)

            while pending:
                if ctx.cancelled:
                    interruption = ctx.reason or CANCELLED
                    break

                done, pending = wait(pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    outcome = self._collect(future, calls[future])
                    self._record(outcomes, outcome)
                    if outcome.is_fatal:
                        interruption = _FATAL
                if interruption:
                    break

                # Abandon calls that overran their own deadline; the worker
                # thread keeps its pool slot until the connector returns
                now = time.monotonic()
                for future in list(pending):
                    call = calls[future]
                    if call.started_at is None or now - call.started_at < options.timeout:
                        continue
                    pending.discard(future)
                    call.context.cancel(DEADLINE_EXCEEDED)
                    logger.warning(f"{call.provider.value} discovery timed out after {options.timeout:g}s")
                    error = DiscoveryError(call.provider, _timeout_message(options.timeout))
                    self._record(outcomes, _ProviderOutcome(call.provider, errors=[error]))

            # Calls may have finished by noticing the cancellation themselves
            if interruption is None and ctx.cancelled:
                interruption = ctx.reason or CANCELLED
            if pending:
                run_ctx.cancel(CANCELLED)
            for future in pending:
                call = calls[future]
                if future.done() and not future.cancelled():
                    self._record(outcomes, self._collect(future, call))
                    continue
                future.cancel()
                logger.warning(f"{call.provider.value} discovery cancelled")
                error = DiscoveryError(call.provider, CANCELLED)
                self._record(outcomes, _ProviderOutcome(call.provider, errors=[error]))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return outcomes, interruption

    def _run_call(self, parent: Context, call: _ProviderCall, timeout: float) -> _ProviderOutcome:
        """Worker body: the full connector lifecycle for one provider"""
        provider = call.provider
        outcome = _ProviderOutcome(provider)
        call.context = ctx = parent.child(timeout=timeout)
        call.started_at = time.monotonic()
        self.events.emit('on_provider_start', provider)

        try:
            ctx.raise_if_cancelled()
            outcome.resources = self._call_connector(ctx, call)
            logger.debug(f"{provider.value} returned {len(outcome.resources)} resources")
        except OperationCancelled:
            # Only the call's own deadline is a timeout; a cancelled run or caller deadline is not
            message = CANCELLED if parent.cancelled else _timeout_message(timeout)
            outcome.errors.append(DiscoveryError(provider, message))
        except ConnectorError as e:
            outcome.errors.append(DiscoveryError(
                provider, str(e),
                severity=_severity(e.severity),
                region=e.region,
                resource_type=e.resource_type,
            ))
        except Exception as e:
            logger.debug(f"{provider.value} connector raised", exc_info=True)
            outcome.errors.append(DiscoveryError(provider, f"discovery failed: {e}"))

        for warning in ctx.warnings:
            outcome.errors.append(DiscoveryError(
                provider, warning['message'],
                severity=Severity.WARNING,
                region=warning['region'],
                resource_type=warning['resource_type'],
            ))

        self.events.emit('on_provider_complete', provider, len(outcome.resources), outcome.failure)
        return outcome

    def _call_connector(self, ctx: Context, call: _ProviderCall) -> List[Resource]:
        connector = call.connector
        try:
            connector.connect(ctx)
        except (OperationCancelled, ConnectorError):
            raise
        except Exception as e:
            raise ConnectorError("connect failed", cause=e) from e

        try:
            ctx.raise_if_cancelled()
            try:
                connector.validate_credentials(ctx)
            except (OperationCancelled, ConnectorError):
                raise
            except Exception as e:
                raise ConnectorError("credential validation failed", cause=e) from e

            ctx.raise_if_cancelled()
            return list(connector.discover_resources(ctx, call.options))
        finally:
            try:
                connector.disconnect(ctx)
            except Exception as e:
                ctx.warn(f"disconnect failed: {e}")

    def _collect(self, future: Future, call: _ProviderCall) -> _ProviderOutcome:
        try:
            return future.result()
        except Exception as e:
            # Only reached if the worker itself broke
            logger.error(f"Discovery worker for {call.provider.value} crashed: {e}")
            return _ProviderOutcome(call.provider, errors=[DiscoveryError(call.provider, f"discovery failed: {e}")])

    def _record(self, outcomes: Dict[CloudProvider, _ProviderOutcome], outcome: _ProviderOutcome) -> None:
        outcomes[outcome.provider] = outcome
        for error in outcome.errors:
            self.events.emit('on_error', error)

    def _cache_get(self, key: str) -> Optional[DiscoveryResult]:
        try:
            return self.cache.get(key)
        except Exception as e:
            logger.warning(f"Cache lookup failed, discovering instead: {e}")
            return None

    def _cache_set(self, key: str, result: DiscoveryResult, ttl: float) -> None:
        try:
            self.cache.set(key, result, ttl)
        except Exception as e:
            logger.warning(f"Failed to cache discovery result: {e}")
