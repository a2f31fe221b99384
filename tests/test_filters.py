"""
Tests for resource filter evaluation and parsing
"""
from datetime import datetime, timezone

import pytest

from cloud_discovery.exceptions import InvalidFilterError
from cloud_discovery.filters import apply_filters, evaluate, matches, parse_filter, resolve_field
from cloud_discovery.models import FilterOperator, FilterType, ResourceFilter

from conftest import make_resource


@pytest.fixture
def instance():
    return make_resource(
        'i-0abc123',
        name='web-server-1',
        status='running',
        zone='us-east-1a',
        metadata={'instance_type': 't3.large', 'cpu_count': 2, 'ebs_optimized': True,
                  'security_groups': ['sg-1', 'sg-2']},
        tags={'Environment': 'production', 'Team': 'platform'},
        created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )


def test_resolve_field(instance):
    """Test field lookup paths"""
    assert resolve_field(instance, 'id') == 'i-0abc123'
    assert resolve_field(instance, 'provider') == 'aws'
    assert resolve_field(instance, 'tags.Team') == 'platform'
    assert resolve_field(instance, 'metadata.cpu_count') == 2
    # Bare names fall back to metadata, then tags
    assert resolve_field(instance, 'instance_type') == 't3.large'
    assert resolve_field(instance, 'Environment') == 'production'


@pytest.mark.parametrize('rule,expected', [
    (ResourceFilter.include('status', 'equals', 'running'), True),
    (ResourceFilter.include('status', 'not_equals', 'running'), False),
    (ResourceFilter.include('name', 'contains', 'server'), True),
    (ResourceFilter.include('name', 'not_contains', 'db'), True),
    (ResourceFilter.include('name', 'starts_with', 'web-'), True),
    (ResourceFilter.include('name', 'ends_with', '-2'), False),
    (ResourceFilter.include('id', 'regex', r'^i-[0-9a-f]+$'), True),
    (ResourceFilter.include('tags.Environment', 'in', values=['staging', 'production']), True),
    (ResourceFilter.include('tags.Environment', 'not_in', values=['staging', 'production']), False),
    (ResourceFilter.include('metadata.cpu_count', 'greater_than', 1), True),
    (ResourceFilter.include('metadata.cpu_count', 'less_than', '2'), False),
    (ResourceFilter.include('created_at', 'greater_than', '2024-01-01T00:00:00+00:00'), True),
    (ResourceFilter.include('created_at', 'less_than', datetime(2024, 1, 1, tzinfo=timezone.utc)), False),
    (ResourceFilter.include('zone', 'exists'), True),
    (ResourceFilter.include('tags.Owner', 'not_exists'), True),
])
def test_operators(instance, rule, expected):
    """Test each operator against a populated resource"""
    assert evaluate(instance, rule) is expected


def test_missing_field_only_satisfies_not_exists(instance):
    """Test a missing field never matches value operators"""
    for rule in [
        ResourceFilter.include('tags.Owner', 'equals', 'alice'),
        ResourceFilter.include('tags.Owner', 'not_equals', 'alice'),
        ResourceFilter.include('tags.Owner', 'not_contains', 'alice'),
        ResourceFilter.include('tags.Owner', 'not_in', values=['alice']),
        ResourceFilter.include('tags.Owner', 'exists'),
    ]:
        assert evaluate(instance, rule) is False
    assert evaluate(instance, ResourceFilter.include('tags.Owner', 'not_exists')) is True


def test_type_mismatch_fails_closed(instance):
    """Test string operators on non-strings and bool/int confusion never match"""
    assert evaluate(instance, ResourceFilter.include('metadata.cpu_count', 'contains', '2')) is False
    assert evaluate(instance, ResourceFilter.include('metadata.security_groups', 'starts_with', 'sg')) is False
    assert evaluate(instance, ResourceFilter.include('metadata.ebs_optimized', 'equals', 1)) is False
    assert evaluate(instance, ResourceFilter.include('metadata.ebs_optimized', 'equals', True)) is True
    assert evaluate(instance, ResourceFilter.include('name', 'greater_than', 5)) is False


def test_dates_without_offset_compare_as_utc(instance):
    """Test date-only bounds and naive field values are read as UTC"""
    assert matches(instance, [parse_filter('created_at:greater_than:2024-01-01')]) is True
    assert matches(instance, [parse_filter('created_at:less_than:2024-01-01')]) is False
    assert matches(instance, [parse_filter('created_at:less_than:2024-06-01T00:00:00')]) is True
    assert evaluate(instance, ResourceFilter.include('created_at', 'equals', datetime(2024, 3, 1))) is True

    naive = make_resource('i-naive', metadata={'backup_time': '2024-03-01T08:00:00'})
    assert evaluate(naive, ResourceFilter.include(
        'metadata.backup_time', 'greater_than', datetime(2024, 3, 1, tzinfo=timezone.utc))) is True
    assert evaluate(naive, ResourceFilter.include(
        'metadata.backup_time', 'less_than', datetime(2024, 3, 1, 12))) is True


def test_matches_include_and_exclude(instance):
    """Test includes must all hold and no exclude may hold"""
    include = ResourceFilter.include('tags.Environment', 'equals', 'production')
    exclude = ResourceFilter.exclude('status', 'equals', 'running')

    assert matches(instance, [include]) is True
    assert matches(instance, [include, exclude]) is False
    assert matches(instance, []) is True


def test_apply_filters_preserves_order():
    """Test filtering keeps the input order"""
    resources = [make_resource(f'i-{n}', status='running' if n % 2 else 'stopped') for n in range(6)]

    kept = apply_filters(resources, [ResourceFilter.include('status', 'equals', 'running')])

    assert [r.id for r in kept] == ['i-1', 'i-3', 'i-5']


def test_invalid_filters_rejected():
    """Test malformed rules fail at construction"""
    with pytest.raises(InvalidFilterError):
        ResourceFilter.include('id', 'regex', '([unclosed')
    with pytest.raises(InvalidFilterError):
        ResourceFilter.include('tags.Env', 'in')
    with pytest.raises(InvalidFilterError):
        ResourceFilter.include('tags.Env', 'equals', values=['a'])
    with pytest.raises(InvalidFilterError):
        ResourceFilter.include('zone', 'exists', 'value')
    with pytest.raises(InvalidFilterError):
        ResourceFilter.include('created_at', 'greater_than', 'yesterday')
    with pytest.raises(InvalidFilterError):
        ResourceFilter.include('name', 'like', 'web')
    with pytest.raises(InvalidFilterError):
        ResourceFilter.include('', 'exists')


def test_parse_filter():
    """Test command-line filter expressions"""
    rule = parse_filter('type:equals:aws_instance')
    assert rule.type == FilterType.INCLUDE
    assert rule.operator == FilterOperator.EQUALS
    assert rule.value == 'aws_instance'

    rule = parse_filter('exclude:tags.Environment:in:dev, test')
    assert rule.type == FilterType.EXCLUDE
    assert rule.values == ('dev', 'test')

    rule = parse_filter('zone:exists')
    assert rule.operator == FilterOperator.EXISTS
    assert rule.value is None

    assert parse_filter('metadata.is_default:eq:false').value is False
    # Numeric-looking ids stay strings
    assert parse_filter('id:==:123456').value == '123456'
    # Values may contain colons
    assert parse_filter('name:regex:^a:b$').value == '^a:b$'


def test_parse_filter_rejects_garbage():
    with pytest.raises(InvalidFilterError):
        parse_filter('justafield')
    with pytest.raises(InvalidFilterError):
        parse_filter('name:sounds_like:bob')
