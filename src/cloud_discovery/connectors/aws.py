"""
AWS connector - EC2 networking and compute inventory through boto3
"""
import logging
from typing import Any, Dict, Iterator, List, Optional, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from ..context import Context
from ..credentials import AWSCredentialProvider
from ..exceptions import ConnectorError
from ..interfaces import ProviderConnector
from ..models import CloudProvider, ProviderDiscoveryOptions, Resource

logger = logging.getLogger(__name__)

RESOURCE_TYPES = ['vpc', 'subnet', 'security_group', 'instance']

# Tags AWS adds to instances launched on behalf of another service
MANAGED_TAG_KEYS = (
    'aws:autoscaling:groupName',
    'eks:nodegroup-name',
    'aws:ec2spot:fleet-request-id',
)


def _tags(aws_tags: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    return {tag['Key']: tag.get('Value', '') for tag in aws_tags or []}


def _compact(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Drop attributes the API left unset"""
    return {k: v for k, v in metadata.items() if v is not None}


def _vpc_resource(vpc: Dict[str, Any], region: str) -> Resource:
    tags = _tags(vpc.get('Tags'))
    return Resource(
        id=vpc['VpcId'],
        name=tags.get('Name', ''),
        type='aws_vpc',
        provider=CloudProvider.AWS,
        region=region,
        status=vpc.get('State'),
        metadata=_compact({
            'cidr_block': vpc.get('CidrBlock'),
            'state': vpc.get('State'),
            'is_default': vpc.get('IsDefault', False),
            'owner_id': vpc.get('OwnerId'),
        }),
        tags=tags,
    )


def _subnet_resource(subnet: Dict[str, Any], region: str) -> Resource:
    tags = _tags(subnet.get('Tags'))
    return Resource(
        id=subnet['SubnetId'],
        name=tags.get('Name', ''),
        type='aws_subnet',
        provider=CloudProvider.AWS,
        region=region,
        zone=subnet.get('AvailabilityZone'),
        status=subnet.get('State'),
        metadata=_compact({
            'vpc_id': subnet.get('VpcId'),
            'cidr_block': subnet.get('CidrBlock'),
            'state': subnet.get('State'),
            'map_public_ip_on_launch': subnet.get('MapPublicIpOnLaunch', False),
            'available_ip_address_count': subnet.get('AvailableIpAddressCount'),
            'default_for_az': subnet.get('DefaultForAz', False),
        }),
        tags=tags,
        dependencies=[subnet['VpcId']] if subnet.get('VpcId') else [],
    )


def _security_group_resource(group: Dict[str, Any], region: str) -> Resource:
    return Resource(
        id=group['GroupId'],
        name=group.get('GroupName', ''),
        type='aws_security_group',
        provider=CloudProvider.AWS,
        region=region,
        metadata=_compact({
            'vpc_id': group.get('VpcId'),
            'description': group.get('Description'),
            'owner_id': group.get('OwnerId'),
            'ingress_rules': len(group.get('IpPermissions', [])),
            'egress_rules': len(group.get('IpPermissionsEgress', [])),
        }),
        tags=_tags(group.get('Tags')),
        dependencies=[group['VpcId']] if group.get('VpcId') else [],
    )


def _instance_resource(instance: Dict[str, Any], region: str) -> Resource:
    tags = _tags(instance.get('Tags'))
    state = instance.get('State', {}).get('Name')
    dependencies = [dep for dep in (instance.get('VpcId'), instance.get('SubnetId')) if dep]
    dependencies.extend(sg['GroupId'] for sg in instance.get('SecurityGroups', []))
    return Resource(
        id=instance['InstanceId'],
        name=tags.get('Name', ''),
        type='aws_instance',
        provider=CloudProvider.AWS,
        region=region,
        zone=instance.get('Placement', {}).get('AvailabilityZone'),
        status=state,
        metadata=_compact({
            'instance_type': instance.get('InstanceType'),
            'state': state,
            'image_id': instance.get('ImageId'),
            'vpc_id': instance.get('VpcId'),
            'subnet_id': instance.get('SubnetId'),
            'private_ip': instance.get('PrivateIpAddress'),
            'public_ip': instance.get('PublicIpAddress'),
            'key_name': instance.get('KeyName'),
        }),
        tags=tags,
        created_at=instance.get('LaunchTime'),
        dependencies=dependencies,
    )


def _is_managed(instance: Dict[str, Any]) -> bool:
    keys = {tag['Key'] for tag in instance.get('Tags') or []}
    return any(key in keys for key in MANAGED_TAG_KEYS)


class AWSConnector(ProviderConnector):
    """
    Discovers VPCs, subnets, security groups and EC2 instances.

    Regions and resource types are scanned one at a time. An API failure in
    one region or for one resource type is reported as a warning on the
    context and the scan continues with the next one.
    """

    def __init__(self,
                 credentials: Optional[AWSCredentialProvider] = None,
                 regions: Optional[Sequence[str]] = None,
                 default_region: str = 'us-east-1'):
        """
        Initialize AWS connector

        Args:
            credentials: Session source; defaults to the standard boto3 chain
            regions: Regions scanned when a request names none; all enabled regions if empty
            default_region: Region used for account-wide calls such as DescribeRegions
        """
        self.credentials = credentials or AWSCredentialProvider(region=default_region)
        self.regions = list(regions or [])
        self.default_region = default_region

    @property
    def provider(self) -> CloudProvider:
        return CloudProvider.AWS

    def _client(self, service: str, region: Optional[str] = None):
        session = self.credentials.get_credentials()
        return session.client(service, region_name=region or self.default_region)

    def connect(self, ctx: Context) -> None:
        self.credentials.get_credentials()

    def validate_credentials(self, ctx: Context) -> None:
        self.credentials.validate_credentials()

    def get_regions(self, ctx: Context) -> List[str]:
        try:
            response = self._client('ec2').describe_regions()
        except (BotoCoreError, ClientError) as e:
            raise ConnectorError("Failed to describe AWS regions", cause=e) from e
        return sorted(region['RegionName'] for region in response['Regions'])

    def get_resource_types(self, ctx: Context) -> List[str]:
        return list(RESOURCE_TYPES)

    def discover_resources(self, ctx: Context, options: ProviderDiscoveryOptions) -> List[Resource]:
        regions = list(options.regions) or self.regions or self.get_regions(ctx)
        resource_types = []
        for resource_type in options.resource_types or RESOURCE_TYPES:
            short_name = resource_type[4:] if resource_type.startswith('aws_') else resource_type
            if short_name not in RESOURCE_TYPES:
                logger.warning(f"Unsupported AWS resource type: {resource_type}")
                ctx.warn(f"unsupported resource type: {resource_type}", resource_type=resource_type)
                continue
            resource_types.append(short_name)

        resources: List[Resource] = []
        for region in regions:
            logger.info(f"Discovering AWS resources in region: {region}")
            for resource_type in resource_types:
                ctx.raise_if_cancelled()
                try:
                    found = list(self._discover_type(ctx, region, resource_type, options))
                except (BotoCoreError, ClientError) as e:
                    logger.warning(f"Failed to discover {resource_type} resources in region {region}: {e}")
                    ctx.warn(f"failed to discover {resource_type}: {e}",
                             region=region, resource_type=resource_type)
                    continue
                logger.debug(f"Found {len(found)} {resource_type} resources in {region}")
                resources.extend(found)

        return resources

    def _discover_type(self, ctx: Context, region: str, resource_type: str,
                       options: ProviderDiscoveryOptions) -> Iterator[Resource]:
        ec2 = self._client('ec2', region)

        if resource_type == 'vpc':
            for vpc in self._paginate(ctx, ec2, 'describe_vpcs', 'Vpcs'):
                if vpc.get('IsDefault') and not options.include_defaults:
                    continue
                yield _vpc_resource(vpc, region)

        elif resource_type == 'subnet':
            for subnet in self._paginate(ctx, ec2, 'describe_subnets', 'Subnets'):
                if subnet.get('DefaultForAz') and not options.include_defaults:
                    continue
                yield _subnet_resource(subnet, region)

        elif resource_type == 'security_group':
            for group in self._paginate(ctx, ec2, 'describe_security_groups', 'SecurityGroups'):
                if group.get('GroupName') == 'default' and not options.include_defaults:
                    continue
                yield _security_group_resource(group, region)

        elif resource_type == 'instance':
            for reservation in self._paginate(ctx, ec2, 'describe_instances', 'Reservations'):
                for instance in reservation.get('Instances', []):
                    if not options.include_managed and _is_managed(instance):
                        continue
                    yield _instance_resource(instance, region)

    def _paginate(self, ctx: Context, client, operation: str, key: str) -> Iterator[Dict[str, Any]]:
        paginator = client.get_paginator(operation)
        for page in paginator.paginate():
            ctx.raise_if_cancelled()
            yield from page.get(key, [])
