"""
Resource filter evaluation

A resource is kept when it satisfies every include rule and none of the
exclude rules. Type mismatches never match (fail closed), and a missing field
only satisfies `not_exists`.
"""
import logging
from datetime import datetime
from typing import Any, Iterable, List, Sequence, Tuple

from dateutil import parser as date_parser

from .exceptions import InvalidFilterError
from .models import FilterOperator, FilterType, Resource, ResourceFilter, _as_utc, _is_number

logger = logging.getLogger(__name__)

_MISSING = object()

_TOP_LEVEL_FIELDS = (
    'id', 'name', 'type', 'region', 'zone', 'status',
    'created_at', 'updated_at', 'dependencies',
)


def resolve_field(resource: Resource, field: str) -> Any:
    """
    Read a field from a resource by name.

    Supports top-level attributes, `tags.<key>`, `metadata.<key>`, and falls
    back to metadata then tags for bare names.
    """
    if field == 'provider':
        return resource.provider.value
    if field in _TOP_LEVEL_FIELDS:
        value = getattr(resource, field)
        return _MISSING if value is None else value
    if field.startswith('tags.'):
        return resource.tags.get(field[len('tags.'):], _MISSING)
    if field.startswith('metadata.'):
        return resource.metadata.get(field[len('metadata.'):], _MISSING)
    if field in resource.metadata:
        return resource.metadata[field]
    return resource.tags.get(field, _MISSING)


def _equal(left: Any, right: Any) -> bool:
    # True == 1 in Python; a boolean only equals a boolean here
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    # Timestamp rule values are stored as ISO strings
    if isinstance(left, datetime) and isinstance(right, str):
        try:
            return _as_utc(left) == _as_utc(date_parser.isoparse(right))
        except ValueError:
            return False
    return left == right


def _comparable(value: Any, bound: Any) -> Tuple[Any, Any]:
    """Coerce a field value against a filter bound; (None, None) if incompatible"""
    if _is_number(bound):
        if _is_number(value):
            return value, bound
        return None, None
    if isinstance(bound, datetime):
        if isinstance(value, str):
            try:
                value = date_parser.isoparse(value)
            except ValueError:
                return None, None
        if not isinstance(value, datetime):
            return None, None
        return _as_utc(value), bound
    return None, None


def evaluate(resource: Resource, rule: ResourceFilter) -> bool:
    """Whether a resource satisfies a single rule's predicate"""
    op = rule.operator
    value = resolve_field(resource, rule.field)

    if op == FilterOperator.EXISTS:
        return value is not _MISSING
    if op == FilterOperator.NOT_EXISTS:
        return value is _MISSING
    if value is _MISSING:
        return False

    if op == FilterOperator.EQUALS:
        return _equal(value, rule.value)
    if op == FilterOperator.NOT_EQUALS:
        return not _equal(value, rule.value)
    if op == FilterOperator.IN:
        return any(_equal(value, v) for v in rule.values)
    if op == FilterOperator.NOT_IN:
        return not any(_equal(value, v) for v in rule.values)

    if op in (FilterOperator.GREATER_THAN, FilterOperator.LESS_THAN):
        left, right = _comparable(value, rule.bound)
        if left is None:
            return False
        return left > right if op == FilterOperator.GREATER_THAN else left < right

    # Remaining operators are string-only
    if not isinstance(value, str):
        return False
    if op == FilterOperator.CONTAINS:
        return rule.value in value
    if op == FilterOperator.NOT_CONTAINS:
        return rule.value not in value
    if op == FilterOperator.STARTS_WITH:
        return value.startswith(rule.value)
    if op == FilterOperator.ENDS_WITH:
        return value.endswith(rule.value)
    if op == FilterOperator.REGEX:
        return rule.pattern.search(value) is not None

    logger.warning(f"Unhandled filter operator: {op}")
    return False


def matches(resource: Resource, filters: Sequence[ResourceFilter]) -> bool:
    """All include rules hold and no exclude rule holds"""
    for rule in filters:
        hit = evaluate(resource, rule)
        if rule.type == FilterType.INCLUDE and not hit:
            return False
        if rule.type == FilterType.EXCLUDE and hit:
            return False
    return True


def apply_filters(resources: Iterable[Resource], filters: Sequence[ResourceFilter]) -> List[Resource]:
    """Keep matching resources, preserving order"""
    if not filters:
        return list(resources)
    return [r for r in resources if matches(r, filters)]


def parse_filter(expression: str) -> ResourceFilter:
    """
    Parse a command-line filter expression.

    Format: ``[include|exclude:]field:operator[:value]``; for in/not_in the
    value is a comma separated list. Boolean literals are
    converted for equality operators; everything else stays a string
    (use greater_than/less_than for numbers).

    Examples:
        ``type:equals:aws_instance``
        ``exclude:tags.Environment:in:dev,test``
        ``zone:exists``
    """
    parts = expression.split(':', 1)
    filter_type = FilterType.INCLUDE
    if parts[0] in (FilterType.INCLUDE.value, FilterType.EXCLUDE.value) and len(parts) == 2:
        filter_type = FilterType(parts[0])
        expression = parts[1]

    pieces = expression.split(':', 2)
    if len(pieces) < 2:
        raise InvalidFilterError(f"Filter expression must be field:operator[:value], got {expression!r}")
    field, operator = pieces[0], FilterOperator.parse(pieces[1])
    raw = pieces[2] if len(pieces) == 3 else None

    if operator.is_multi_value:
        values = [v.strip() for v in (raw or '').split(',') if v.strip()]
        return ResourceFilter(field, operator, None, values, filter_type)
    if operator.is_presence:
        return ResourceFilter(field, operator, None, None, filter_type)
    if operator in (FilterOperator.EQUALS, FilterOperator.NOT_EQUALS) and raw is not None:
        return ResourceFilter(field, operator, _literal(raw), None, filter_type)
    return ResourceFilter(field, operator, raw, None, filter_type)


def _literal(raw: str) -> Any:
    lowered = raw.lower()
    if lowered in ('true', 'false'):
        return lowered == 'true'
    return raw
