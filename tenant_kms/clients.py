"""
boto3 client construction bound to one tenant's credentials.

Every client gets its own boto3.Session built from explicit credentials, so
two tenants running at the same time never see each other's keys.
"""

import logging
from typing import Optional

import boto3
from botocore.config import Config

from .config import Settings
from .credentials import CredentialResolver, ResolvedCredentials

logger = logging.getLogger(__name__)


class ServiceClientFactory:
    def __init__(self, resolver: CredentialResolver, settings: Optional[Settings] = None):
        self.resolver = resolver
        self.settings = settings or Settings()

    def client_config(self) -> Config:
        return Config(
            connect_timeout=self.settings.connect_timeout,
            read_timeout=self.settings.read_timeout,
            retries={'max_attempts': self.settings.max_attempts, 'mode': 'standard'},
        )

    def session_for(self, credentials: ResolvedCredentials) -> boto3.Session:
        return boto3.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            region_name=credentials.region,
        )

    def client_for(self, service: str, credentials: ResolvedCredentials):
        logger.debug(f"Creating {service} client in {credentials.region} from {credentials.source} credentials")
        session = self.session_for(credentials)
        return session.client(service, region_name=credentials.region, config=self.client_config())

    def kms_client_for(self, credentials: ResolvedCredentials):
        return self.client_for('kms', credentials)

    def iam_client_for(self, credentials: ResolvedCredentials):
        return self.client_for('iam', credentials)

    def sts_client_for(self, credentials: ResolvedCredentials):
        return self.client_for('sts', credentials)

    def kms_client(self, tenant: str):
        return self.kms_client_for(self.resolver.resolve(tenant))

    def iam_client(self, tenant: str):
        return self.iam_client_for(self.resolver.resolve(tenant))

    def sts_client(self, tenant: str):
        return self.sts_client_for(self.resolver.resolve(tenant))
