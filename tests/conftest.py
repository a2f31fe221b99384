"""
Shared fixtures and fakes for cloud discovery tests
"""
import threading
import time
from typing import List, Optional, Sequence

import pytest

from cloud_discovery.context import Context
from cloud_discovery.interfaces import EventHandler, ProviderConnector
from cloud_discovery.models import CloudProvider, ProviderDiscoveryOptions, Resource


def make_resource(resource_id: str, provider='aws', type='aws_instance', region='us-east-1',
                  **kwargs) -> Resource:
    """Build a resource with sensible defaults"""
    kwargs.setdefault('name', resource_id)
    return Resource(id=resource_id, type=type, provider=provider, region=region, **kwargs)


class ConcurrencyProbe:
    """Tracks how many connector calls run at the same time"""

    def __init__(self):
        self._lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def enter(self):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)

    def exit(self):
        with self._lock:
            self.active -= 1


class FakeConnector(ProviderConnector):
    """
    In-memory connector.

    `delay` waits cooperatively on the context unless `ignore_cancel` is set,
    in which case it sleeps through cancellation like a stuck API call.
    """

    def __init__(self, provider, resources: Sequence[Resource] = (), error: Optional[Exception] = None,
                 delay: float = 0.0, ignore_cancel: bool = False, probe: Optional[ConcurrencyProbe] = None,
                 warnings: Sequence[str] = (), credential_error: Optional[Exception] = None,
                 disconnect_error: Optional[Exception] = None, on_discover=None):
        self._provider = CloudProvider.parse(provider)
        self.resources = list(resources)
        self.error = error
        self.delay = delay
        self.ignore_cancel = ignore_cancel
        self.probe = probe
        self.warnings = list(warnings)
        self.credential_error = credential_error
        self.disconnect_error = disconnect_error
        self.on_discover = on_discover
        self.calls = 0
        self.lifecycle: List[str] = []
        self.seen_options: Optional[ProviderDiscoveryOptions] = None

    @property
    def provider(self) -> CloudProvider:
        return self._provider

    def connect(self, ctx: Context) -> None:
        self.lifecycle.append('connect')

    def disconnect(self, ctx: Context) -> None:
        self.lifecycle.append('disconnect')
        if self.disconnect_error:
            raise self.disconnect_error

    def validate_credentials(self, ctx: Context) -> None:
        self.lifecycle.append('validate_credentials')
        if self.credential_error:
            raise self.credential_error

    def discover_resources(self, ctx: Context, options: ProviderDiscoveryOptions) -> List[Resource]:
        self.lifecycle.append('discover_resources')
        self.calls += 1
        self.seen_options = options
        if self.probe:
            self.probe.enter()
        try:
            if self.on_discover:
                self.on_discover()
            if self.delay:
                if self.ignore_cancel:
                    time.sleep(self.delay)
                elif ctx.wait(self.delay):
                    ctx.raise_if_cancelled()
            for message in self.warnings:
                ctx.warn(message, region='region-1')
            if self.error:
                raise self.error
            return list(self.resources)
        finally:
            if self.probe:
                self.probe.exit()

    def get_regions(self, ctx: Context) -> List[str]:
        return ['region-1', 'region-2']

    def get_resource_types(self, ctx: Context) -> List[str]:
        return ['instance']


class RecordingEventHandler(EventHandler):
    """Records every hook call as (hook name, args)"""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def _record(self, name, *args):
        with self._lock:
            self.events.append((name, args))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def on_discovery_start(self, options):
        self._record('on_discovery_start', options)

    def on_discovery_complete(self, result):
        self._record('on_discovery_complete', result)

    def on_provider_start(self, provider):
        self._record('on_provider_start', provider)

    def on_provider_complete(self, provider, resource_count, error):
        self._record('on_provider_complete', provider, resource_count, error)

    def on_resource_discovered(self, resource):
        self._record('on_resource_discovered', resource)

    def on_error(self, error):
        self._record('on_error', error)

    def on_cache_hit(self, key, result):
        self._record('on_cache_hit', key, result)


@pytest.fixture
def recorder():
    return RecordingEventHandler()


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mocked AWS credentials for moto"""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    monkeypatch.delenv('AWS_PROFILE', raising=False)
