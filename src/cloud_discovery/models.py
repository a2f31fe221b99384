"""
Data model for multi-cloud resource discovery

All records are created fresh for each discovery run. Resources are frozen
once a connector produces them; the engine only copies them into result
containers. The JSON produced by `DiscoveryResult.to_json` is the interchange
format shared with renderers and cache backends and round-trips exactly.
"""
import hashlib
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from dateutil import parser as date_parser

from .exceptions import ConfigurationError, InvalidFilterError, UnsupportedProviderError

DEFAULT_MAX_CONCURRENCY = 10
DEFAULT_TIMEOUT = 600.0
DEFAULT_CACHE_TTL = 3600.0

# Tagged union of values allowed in Resource.metadata
MetadataValue = Union[str, int, float, bool, List[str]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _as_utc(value: datetime) -> datetime:
    """Read timestamps without an offset as UTC"""
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return date_parser.isoparse(value)


class CloudProvider(Enum):
    """Cloud platforms a connector can be registered for"""
    AWS = "aws"
    AZURE = "azure"
    GCP = "gcp"
    VMWARE = "vmware"
    KVM = "kvm"
    OPENSTACK = "openstack"

    @classmethod
    def parse(cls, value: Union[str, 'CloudProvider']) -> 'CloudProvider':
        """Parse a provider name case-insensitively"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedProviderError(value, "unknown provider name") from None

    def __str__(self) -> str:
        return self.value


class Severity(Enum):
    """Severity of a DiscoveryError"""
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"

    @classmethod
    def parse(cls, value: Union[str, 'Severity']) -> 'Severity':
        if isinstance(value, cls):
            return value
        return cls(str(value).lower())


class FilterType(Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


class FilterOperator(Enum):
    """Operators understood by the filter evaluator"""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    REGEX = "regex"
    IN = "in"
    NOT_IN = "not_in"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"

    @classmethod
    def parse(cls, value: Union[str, 'FilterOperator']) -> 'FilterOperator':
        """Parse an operator name, accepting the short aliases"""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        name = _OPERATOR_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            raise InvalidFilterError(f"Unknown filter operator: {value}") from None

    @property
    def is_multi_value(self) -> bool:
        return self in (FilterOperator.IN, FilterOperator.NOT_IN)

    @property
    def is_presence(self) -> bool:
        return self in (FilterOperator.EXISTS, FilterOperator.NOT_EXISTS)


_OPERATOR_ALIASES = {
    'eq': 'equals',
    '=': 'equals',
    '==': 'equals',
    'ne': 'not_equals',
    '!=': 'not_equals',
}

_STRING_OPERATORS = (
    FilterOperator.CONTAINS,
    FilterOperator.NOT_CONTAINS,
    FilterOperator.STARTS_WITH,
    FilterOperator.ENDS_WITH,
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_metadata_value(key: str, value: Any) -> None:
    if isinstance(value, (str, bool, int, float)):
        return
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return
    raise TypeError(
        f"Unsupported metadata value for '{key}': {type(value).__name__} "
        f"(expected str, int, float, bool or list of str)"
    )


@dataclass(frozen=True)
class Resource:
    """A discovered cloud resource; identity is (provider, id)"""
    id: str
    name: str
    type: str
    provider: CloudProvider
    region: str = ""
    zone: Optional[str] = None
    status: Optional[str] = None
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)
    tags: Dict[str, str] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    dependencies: List[str] = field(default_factory=list)

    def __post_init__(self):
        object.__setattr__(self, 'provider', CloudProvider.parse(self.provider))
        for key, value in self.metadata.items():
            _check_metadata_value(key, value)

    @property
    def key(self) -> Tuple[CloudProvider, str]:
        return (self.provider, self.id)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'provider': self.provider.value,
            'region': self.region,
        }
        if self.zone:
            data['zone'] = self.zone
        if self.status:
            data['status'] = self.status
        data['metadata'] = dict(self.metadata)
        if self.tags:
            data['tags'] = dict(self.tags)
        if self.created_at:
            data['created_at'] = _format_time(self.created_at)
        if self.updated_at:
            data['updated_at'] = _format_time(self.updated_at)
        if self.dependencies:
            data['dependencies'] = list(self.dependencies)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Resource':
        return cls(
            id=data['id'],
            name=data.get('name', ''),
            type=data['type'],
            provider=CloudProvider.parse(data['provider']),
            region=data.get('region', ''),
            zone=data.get('zone'),
            status=data.get('status'),
            metadata=dict(data.get('metadata') or {}),
            tags=dict(data.get('tags') or {}),
            created_at=_parse_time(data.get('created_at')),
            updated_at=_parse_time(data.get('updated_at')),
            dependencies=list(data.get('dependencies') or []),
        )


@dataclass(frozen=True)
class ResourceFilter:
    """
    A stateless inclusion/exclusion rule.

    Cardinality is checked at construction: `values` only for in/not_in,
    `value` for everything except exists/not_exists. Regex patterns and
    comparison bounds are compiled here so a bad filter never reaches
    orchestration.
    """
    field: str
    operator: FilterOperator
    value: Any = None
    values: Optional[Tuple[Any, ...]] = None
    type: FilterType = FilterType.INCLUDE
    _pattern: Optional['re.Pattern'] = field(default=None, init=False, repr=False, compare=False)
    _bound: Any = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'operator', FilterOperator.parse(self.operator))
        try:
            object.__setattr__(self, 'type', FilterType(self.type))
        except ValueError:
            raise InvalidFilterError(f"Unknown filter type: {self.type}", self.field) from None
        if self.values is not None:
            if isinstance(self.values, (str, bytes)) or not isinstance(self.values, Sequence):
                raise InvalidFilterError(
                    f"'values' must be a list for operator {self.operator.value}", self.field)
            object.__setattr__(self, 'values', tuple(self.values))
        # Timestamps are held in wire form so a filter read back from JSON compares equal
        if isinstance(self.value, datetime):
            object.__setattr__(self, 'value', _format_time(_as_utc(self.value)))
        self._validate()

    def _validate(self) -> None:
        op = self.operator
        if not self.field:
            raise InvalidFilterError("Filter field must not be empty")

        if op.is_multi_value:
            if self.value is not None or not self.values:
                raise InvalidFilterError(
                    f"Operator {op.value} requires a non-empty 'values' list and no 'value'",
                    self.field)
            return
        if self.values is not None:
            raise InvalidFilterError(
                f"'values' is only allowed for in/not_in, not {op.value}", self.field)
        if op.is_presence:
            if self.value is not None:
                raise InvalidFilterError(f"Operator {op.value} takes no value", self.field)
            return
        if self.value is None:
            raise InvalidFilterError(f"Operator {op.value} requires a value", self.field)

        if op in _STRING_OPERATORS and not isinstance(self.value, str):
            raise InvalidFilterError(f"Operator {op.value} requires a string value", self.field)
        if op == FilterOperator.REGEX:
            if not isinstance(self.value, str):
                raise InvalidFilterError("Operator regex requires a string pattern", self.field)
            try:
                object.__setattr__(self, '_pattern', re.compile(self.value))
            except re.error as e:
                raise InvalidFilterError(
                    f"Invalid regular expression {self.value!r}", self.field, cause=e) from e
        if op in (FilterOperator.GREATER_THAN, FilterOperator.LESS_THAN):
            object.__setattr__(self, '_bound', self._comparison_bound(self.value))

    def _comparison_bound(self, value: Any) -> Any:
        if _is_number(value):
            return value
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                pass
            try:
                return _as_utc(date_parser.isoparse(value))
            except ValueError as e:
                raise InvalidFilterError(
                    f"Comparison value {value!r} is neither a number nor a timestamp",
                    self.field, cause=e) from e
        raise InvalidFilterError(
            f"Comparison value must be a number or timestamp, got {type(value).__name__}",
            self.field)

    @property
    def pattern(self) -> Optional['re.Pattern']:
        return self._pattern

    @property
    def bound(self) -> Any:
        return self._bound

    @classmethod
    def include(cls, field: str, operator: Union[str, FilterOperator], value: Any = None,
                values: Optional[Sequence[Any]] = None) -> 'ResourceFilter':
        return cls(field, operator, value, values, FilterType.INCLUDE)

    @classmethod
    def exclude(cls, field: str, operator: Union[str, FilterOperator], value: Any = None,
                values: Optional[Sequence[Any]] = None) -> 'ResourceFilter':
        return cls(field, operator, value, values, FilterType.EXCLUDE)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'type': self.type.value,
            'field': self.field,
            'operator': self.operator.value,
        }
        if self.value is not None:
            data['value'] = self.value
        if self.values is not None:
            data['values'] = list(self.values)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResourceFilter':
        if 'field' not in data or 'operator' not in data:
            raise InvalidFilterError(f"Filter requires 'field' and 'operator': {data}")
        return cls(
            field=data['field'],
            operator=data['operator'],
            value=data.get('value'),
            values=data.get('values'),
            type=data.get('type', FilterType.INCLUDE.value),
        )


@dataclass(frozen=True)
class ProviderDiscoveryOptions:
    """The slice of DiscoveryOptions handed to a single connector"""
    provider: CloudProvider
    regions: Tuple[str, ...] = ()
    resource_types: Tuple[str, ...] = ()
    tags: Dict[str, str] = field(default_factory=dict)
    filters: Tuple[ResourceFilter, ...] = ()
    include_managed: bool = True
    include_defaults: bool = False
    extra_params: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DiscoveryOptions:
    """Request-scoped configuration for one discovery run"""
    providers: Tuple[CloudProvider, ...]
    regions: Tuple[str, ...] = ()
    resource_types: Tuple[str, ...] = ()
    tags: Dict[str, str] = field(default_factory=dict)
    filters: Tuple[ResourceFilter, ...] = ()
    include_managed: bool = True
    include_defaults: bool = False
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    timeout: float = DEFAULT_TIMEOUT
    use_cache: bool = False
    cache_ttl: float = DEFAULT_CACHE_TTL
    extra_params: Dict[CloudProvider, Dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self):
        providers = self.providers
        if isinstance(providers, (str, CloudProvider)):
            providers = [providers]
        parsed: List[CloudProvider] = []
        for provider in providers or ():
            provider = CloudProvider.parse(provider)
            if provider not in parsed:
                parsed.append(provider)
        object.__setattr__(self, 'providers', tuple(parsed))
        object.__setattr__(self, 'regions', tuple(self.regions or ()))
        object.__setattr__(self, 'resource_types', tuple(self.resource_types or ()))
        object.__setattr__(self, 'tags', dict(self.tags or {}))
        object.__setattr__(self, 'filters', tuple(
            f if isinstance(f, ResourceFilter) else ResourceFilter.from_dict(f)
            for f in (self.filters or ())
        ))
        object.__setattr__(self, 'extra_params', {
            CloudProvider.parse(k): dict(v) for k, v in (self.extra_params or {}).items()
        })
        self.validate()

    def validate(self) -> None:
        if not self.providers:
            raise ConfigurationError("At least one provider must be specified")
        if self.max_concurrency < 1:
            raise ConfigurationError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be greater than 0, got {self.timeout}")
        if self.cache_ttl < 0:
            raise ConfigurationError(f"cache_ttl must not be negative, got {self.cache_ttl}")

    def tag_filters(self) -> Tuple[ResourceFilter, ...]:
        """Required tags expressed as include rules"""
        rules = []
        for key, value in sorted(self.tags.items()):
            if value:
                rules.append(ResourceFilter.include(f"tags.{key}", FilterOperator.EQUALS, value))
            else:
                rules.append(ResourceFilter.include(f"tags.{key}", FilterOperator.EXISTS))
        return tuple(rules)

    def effective_filters(self) -> Tuple[ResourceFilter, ...]:
        return self.filters + self.tag_filters()

    def for_provider(self, provider: CloudProvider) -> ProviderDiscoveryOptions:
        return ProviderDiscoveryOptions(
            provider=provider,
            regions=self.regions,
            resource_types=self.resource_types,
            tags=dict(self.tags),
            filters=self.filters,
            include_managed=self.include_managed,
            include_defaults=self.include_defaults,
            extra_params=dict(self.extra_params.get(provider, {})),
        )

    def fingerprint(self) -> str:
        """Order-independent cache key over every field that shapes the result"""
        canonical = {
            'providers': sorted(p.value for p in self.providers),
            'regions': sorted(set(self.regions)),
            'resource_types': sorted(set(self.resource_types)),
            'tags': sorted(self.tags.items()),
            'filters': sorted(
                json.dumps(f.to_dict(), sort_keys=True, default=str) for f in self.filters
            ),
            'include_managed': self.include_managed,
            'include_defaults': self.include_defaults,
            'extra_params': sorted(
                (p.value, json.dumps(v, sort_keys=True, default=str))
                for p, v in self.extra_params.items()
            ),
        }
        payload = json.dumps(canonical, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(payload.encode('utf-8')).hexdigest()


@dataclass(frozen=True)
class DiscoveryError:
    """A provider-scoped problem recorded during a run"""
    provider: CloudProvider
    message: str
    severity: Severity = Severity.ERROR
    region: Optional[str] = None
    resource_type: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        object.__setattr__(self, 'provider', CloudProvider.parse(self.provider))
        object.__setattr__(self, 'severity', Severity.parse(self.severity))

    @property
    def is_warning(self) -> bool:
        return self.severity == Severity.WARNING

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'provider': self.provider.value}
        if self.region:
            data['region'] = self.region
        if self.resource_type:
            data['resource_type'] = self.resource_type
        data['message'] = self.message
        data['severity'] = self.severity.value
        data['timestamp'] = _format_time(self.timestamp)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DiscoveryError':
        return cls(
            provider=CloudProvider.parse(data['provider']),
            message=data['message'],
            severity=Severity.parse(data.get('severity', 'error')),
            region=data.get('region'),
            resource_type=data.get('resource_type'),
            timestamp=_parse_time(data.get('timestamp')) or utcnow(),
        )


@dataclass(frozen=True)
class DiscoveryMetadata:
    """Summary computed once from the final resource and error lists"""
    start_time: datetime
    end_time: datetime
    duration: float
    resource_count: int
    provider_stats: Dict[str, int]
    error_count: int
    warning_count: int
    filters: Tuple[ResourceFilter, ...] = ()

    @classmethod
    def build(cls,
              start_time: datetime,
              end_time: datetime,
              resources: Sequence[Resource],
              errors: Sequence[DiscoveryError],
              filters: Sequence[ResourceFilter] = ()) -> 'DiscoveryMetadata':
        provider_stats: Dict[str, int] = {}
        for resource in resources:
            provider_stats[resource.provider.value] = provider_stats.get(resource.provider.value, 0) + 1
        warnings = sum(1 for e in errors if e.is_warning)
        return cls(
            start_time=start_time,
            end_time=end_time,
            duration=(end_time - start_time).total_seconds(),
            resource_count=len(resources),
            provider_stats=provider_stats,
            error_count=len(errors) - warnings,
            warning_count=warnings,
            filters=tuple(filters),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'start_time': _format_time(self.start_time),
            'end_time': _format_time(self.end_time),
            'duration': self.duration,
            'resource_count': self.resource_count,
            'provider_stats': dict(self.provider_stats),
            'error_count': self.error_count,
            'warning_count': self.warning_count,
            'filters_applied': [f.to_dict() for f in self.filters],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DiscoveryMetadata':
        return cls(
            start_time=_parse_time(data['start_time']),
            end_time=_parse_time(data['end_time']),
            duration=data['duration'],
            resource_count=data['resource_count'],
            provider_stats=dict(data.get('provider_stats') or {}),
            error_count=data.get('error_count', 0),
            warning_count=data.get('warning_count', 0),
            filters=tuple(ResourceFilter.from_dict(f) for f in data.get('filters_applied') or []),
        )


@dataclass(frozen=True)
class DiscoveryResult:
    """The sole return value of a discovery run; cached as a whole"""
    resources: List[Resource]
    errors: List[DiscoveryError]
    metadata: DiscoveryMetadata

    def resources_for(self, provider: Union[str, CloudProvider]) -> List[Resource]:
        provider = CloudProvider.parse(provider)
        return [r for r in self.resources if r.provider == provider]

    def errors_for(self, provider: Union[str, CloudProvider]) -> List[DiscoveryError]:
        provider = CloudProvider.parse(provider)
        return [e for e in self.errors if e.provider == provider]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'resources': [r.to_dict() for r in self.resources]}
        if self.errors:
            data['errors'] = [e.to_dict() for e in self.errors]
        data['metadata'] = self.metadata.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DiscoveryResult':
        return cls(
            resources=[Resource.from_dict(r) for r in data.get('resources') or []],
            errors=[DiscoveryError.from_dict(e) for e in data.get('errors') or []],
            metadata=DiscoveryMetadata.from_dict(data['metadata']),
        )

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str) -> 'DiscoveryResult':
        return cls.from_dict(json.loads(text))
