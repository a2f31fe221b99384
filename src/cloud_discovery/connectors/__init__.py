"""Provider connectors bundled with cloud discovery"""
from typing import Any, Dict, List, Optional

from ..credentials import AWSCredentialProvider
from ..interfaces import ProviderConnector
from .aws import AWSConnector


def create_connectors(config: Dict[str, Any], aws_profile: Optional[str] = None) -> List[ProviderConnector]:
    """Build the bundled connectors from the `providers` config section"""
    aws = (config.get('providers') or {}).get('aws') or {}
    regions = aws.get('regions') or []
    credentials = AWSCredentialProvider(
        profile=aws_profile or aws.get('profile'),
        role_arn=aws.get('role_arn'),
        region=regions[0] if regions else None,
    )
    return [
        AWSConnector(credentials=credentials, regions=regions,
                     default_region=regions[0] if regions else 'us-east-1'),
    ]


__all__ = ['AWSConnector', 'create_connectors']
