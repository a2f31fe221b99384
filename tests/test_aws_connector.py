"""
Tests for the AWS connector
"""
from unittest.mock import patch

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from cloud_discovery.connectors import AWSConnector, create_connectors
from cloud_discovery.context import Context
from cloud_discovery.credentials import AWSCredentialProvider
from cloud_discovery.engine import DiscoveryEngine
from cloud_discovery.exceptions import ConnectorError
from cloud_discovery.models import CloudProvider, DiscoveryOptions, ProviderDiscoveryOptions

REGION = 'us-east-1'


@pytest.fixture
def ec2(aws_credentials):
    """Mocked EC2 with one tagged VPC, subnet, security group and two instances"""
    with mock_aws():
        client = boto3.client('ec2', region_name=REGION)
        vpc_id = client.create_vpc(
            CidrBlock='10.0.0.0/16',
            TagSpecifications=[{'ResourceType': 'vpc', 'Tags': [
                {'Key': 'Name', 'Value': 'main'},
                {'Key': 'Environment', 'Value': 'production'},
            ]}],
        )['Vpc']['VpcId']
        subnet_id = client.create_subnet(
            VpcId=vpc_id, CidrBlock='10.0.1.0/24', AvailabilityZone='us-east-1a'
        )['Subnet']['SubnetId']
        client.create_security_group(GroupName='web', Description='web tier', VpcId=vpc_id)
        image_id = client.describe_images()['Images'][0]['ImageId']
        client.run_instances(
            ImageId=image_id, MinCount=1, MaxCount=1, InstanceType='t3.micro', SubnetId=subnet_id,
            TagSpecifications=[{'ResourceType': 'instance', 'Tags': [{'Key': 'Name', 'Value': 'web-1'}]}],
        )
        client.run_instances(
            ImageId=image_id, MinCount=1, MaxCount=1, InstanceType='t3.micro', SubnetId=subnet_id,
            TagSpecifications=[{'ResourceType': 'instance', 'Tags': [
                {'Key': 'eks:nodegroup-name', 'Value': 'workers'},
            ]}],
        )
        yield {'client': client, 'vpc_id': vpc_id, 'subnet_id': subnet_id}


@pytest.fixture
def connector():
    return AWSConnector(credentials=AWSCredentialProvider(region=REGION), regions=[REGION],
                        default_region=REGION)


def options(**kwargs):
    return ProviderDiscoveryOptions(provider=CloudProvider.AWS, **kwargs)


def test_discovers_all_types(ec2, connector):
    """Test VPC, subnet, security group and instances are mapped"""
    resources = connector.discover_resources(Context(), options())

    by_type = {}
    for resource in resources:
        by_type.setdefault(resource.type, []).append(resource)

    vpc = by_type['aws_vpc'][0]
    assert len(by_type['aws_vpc']) == 1
    assert vpc.id == ec2['vpc_id']
    assert vpc.name == 'main'
    assert vpc.tags['Environment'] == 'production'
    assert vpc.metadata['cidr_block'] == '10.0.0.0/16'
    assert vpc.metadata['is_default'] is False

    subnet = by_type['aws_subnet'][0]
    assert subnet.zone == 'us-east-1a'
    assert subnet.metadata['vpc_id'] == ec2['vpc_id']
    assert subnet.dependencies == [ec2['vpc_id']]

    assert [sg.name for sg in by_type['aws_security_group']] == ['web']

    instances = by_type['aws_instance']
    assert len(instances) == 2
    web = next(i for i in instances if i.name == 'web-1')
    assert web.metadata['instance_type'] == 't3.micro'
    assert web.metadata['subnet_id'] == ec2['subnet_id']
    assert web.region == REGION
    assert web.created_at is not None
    assert ec2['subnet_id'] in web.dependencies


def test_include_defaults(ec2, connector):
    """Test default VPC, subnets and security groups only appear on request"""
    resources = connector.discover_resources(Context(), options(include_defaults=True))

    vpcs = [r for r in resources if r.type == 'aws_vpc']
    groups = [r for r in resources if r.type == 'aws_security_group']
    assert any(v.metadata['is_default'] for v in vpcs)
    assert 'default' in {g.name for g in groups}


def test_exclude_managed_instances(ec2, connector):
    """Test instances owned by node groups are skipped when asked"""
    resources = connector.discover_resources(
        Context(), options(resource_types=('instance',), include_managed=False))

    assert [r.name for r in resources] == ['web-1']


def test_resource_type_selection(ec2, connector):
    """Test resource types may be given with or without the aws_ prefix"""
    ctx = Context()
    resources = connector.discover_resources(ctx, options(resource_types=('aws_vpc', 'load_balancer')))

    assert {r.type for r in resources} == {'aws_vpc'}
    assert ctx.warnings[0]['resource_type'] == 'load_balancer'


def test_api_failure_becomes_warning(ec2, connector):
    """Test a failing describe call is reported and the scan continues"""
    error = ClientError({'Error': {'Code': 'UnauthorizedOperation', 'Message': 'denied'}}, 'DescribeSubnets')
    original = AWSConnector._discover_type

    def flaky(self, ctx, region, resource_type, provider_options):
        if resource_type == 'subnet':
            raise error
        return original(self, ctx, region, resource_type, provider_options)

    ctx = Context()
    with patch.object(AWSConnector, '_discover_type', flaky):
        resources = connector.discover_resources(ctx, options())

    assert 'aws_subnet' not in {r.type for r in resources}
    assert 'aws_vpc' in {r.type for r in resources}
    assert len(ctx.warnings) == 1
    assert ctx.warnings[0]['region'] == REGION
    assert ctx.warnings[0]['resource_type'] == 'subnet'


def test_regions_and_credentials(ec2, connector):
    ctx = Context()

    connector.validate_credentials(ctx)
    assert REGION in connector.get_regions(ctx)
    assert connector.get_resource_types(ctx) == ['vpc', 'subnet', 'security_group', 'instance']


def test_resources_by_type(ec2, connector):
    resources = connector.get_resources_by_type(Context(), 'subnet', REGION)

    assert [r.id for r in resources] == [ec2['subnet_id']]


def test_assume_role_failure(aws_credentials):
    """Test assume-role errors surface as ConnectorError"""
    provider = AWSCredentialProvider(role_arn='arn:aws:iam::123456789012:role/missing', region=REGION)

    with patch('boto3.Session.client') as client:
        client.return_value.assume_role.side_effect = ClientError(
            {'Error': {'Code': 'AccessDenied', 'Message': 'no'}}, 'AssumeRole')
        with pytest.raises(ConnectorError):
            provider.get_credentials()


def test_engine_with_aws_connector(ec2):
    """Test the engine drives the AWS connector end to end"""
    engine = DiscoveryEngine(connectors=create_connectors({'providers': {'aws': {'regions': [REGION]}}}))

    result = engine.discover(DiscoveryOptions(providers=['aws'], resource_types=['vpc', 'instance'],
                                              tags={'Environment': 'production'}))

    assert result.errors == []
    assert [r.id for r in result.resources] == [ec2['vpc_id']]
    assert result.metadata.provider_stats == {'aws': 1}
