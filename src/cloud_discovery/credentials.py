"""
Credential providers used by connectors
"""
import logging
import threading
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import ConnectorError
from .interfaces import CredentialProvider

logger = logging.getLogger(__name__)


class AWSCredentialProvider(CredentialProvider):
    """
    boto3 session factory for a named profile, optionally assuming a role.

    The session is created lazily and reused until refresh_credentials().
    """

    def __init__(self,
                 profile: Optional[str] = None,
                 role_arn: Optional[str] = None,
                 region: Optional[str] = None,
                 session_name: str = 'CloudDiscovery'):
        self.profile = profile
        self.role_arn = role_arn
        self.region = region
        self.session_name = session_name
        self._session: Optional[boto3.Session] = None
        self._lock = threading.Lock()

    def get_credentials(self) -> boto3.Session:
        with self._lock:
            if self._session is None:
                self._session = self._create_session()
            return self._session

    def refresh_credentials(self) -> boto3.Session:
        with self._lock:
            self._session = self._create_session()
            return self._session

    def validate_credentials(self) -> None:
        """Call sts:GetCallerIdentity with the current session"""
        session = self.get_credentials()
        try:
            identity = session.client('sts').get_caller_identity()
        except (BotoCoreError, ClientError) as e:
            raise ConnectorError("AWS credential validation failed", cause=e) from e
        logger.info(f"AWS credentials valid for account {identity.get('Account')}")

    def _create_session(self) -> boto3.Session:
        base = boto3.Session(profile_name=self.profile, region_name=self.region)
        if not self.role_arn:
            return base
        return self.assume_role(base, self.role_arn)

    def assume_role(self, session: boto3.Session, role_arn: str) -> boto3.Session:
        """Assume role and return a session for it"""
        sts = session.client('sts')

        try:
            response = sts.assume_role(
                RoleArn=role_arn,
                RoleSessionName=self.session_name
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to assume role {role_arn}: {e}")
            raise ConnectorError(f"Failed to assume role {role_arn}", cause=e) from e

        return boto3.Session(
            aws_access_key_id=response['Credentials']['AccessKeyId'],
            aws_secret_access_key=response['Credentials']['SecretAccessKey'],
            aws_session_token=response['Credentials']['SessionToken'],
            region_name=self.region or session.region_name
        )
