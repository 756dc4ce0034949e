"""
Discovers which IAM principal a tenant's credentials belong to.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .clients import ServiceClientFactory
from .credentials import ResolvedCredentials
from .errors import IdentityError, UnsupportedPrincipalType

logger = logging.getLogger(__name__)

ASSUMED_ROLE_MARKER = ':assumed-role/'
USER_MARKER = ':user/'


class PrincipalType(Enum):
    USER = 'USER'
    ASSUMED_ROLE = 'ASSUMED_ROLE'
    UNSUPPORTED = 'UNSUPPORTED'


@dataclass(frozen=True)
class Identity:
    arn: str
    account: str
    principal_type: PrincipalType
    # ARN to grant in key policies; the role ARN for assumed-role sessions
    principal_arn: str


def classify_principal(arn: str) -> PrincipalType:
    if ASSUMED_ROLE_MARKER in arn:
        return PrincipalType.ASSUMED_ROLE
    if USER_MARKER in arn:
        return PrincipalType.USER
    return PrincipalType.UNSUPPORTED


def role_name_from_arn(arn: str) -> str:
    """Return the role name of an assumed-role session ARN.

    ``arn:aws:sts::123456789012:assumed-role/Admin/session`` -> ``Admin``
    """
    parts = arn.split(':', 5)
    resource = parts[5] if len(parts) == 6 else ''
    segments = resource.split('/')
    if len(segments) < 2 or segments[0] != 'assumed-role' or not segments[1]:
        raise IdentityError(f"Cannot extract role name from ARN: {arn}")
    return segments[1]


class IdentityResolver:
    def __init__(self, factory: ServiceClientFactory):
        self.factory = factory

    def caller_identity(self, tenant: str, credentials: Optional[ResolvedCredentials] = None) -> Dict[str, str]:
        """Return ``{'Arn', 'Account', 'UserId'}`` from STS GetCallerIdentity."""
        credentials = credentials or self.factory.resolver.resolve(tenant)
        sts = self.factory.sts_client_for(credentials)
        try:
            response = sts.get_caller_identity()
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Could not get AWS caller identity for tenant {tenant}: {e}")
            raise IdentityError.from_boto('GetCallerIdentity', f"tenant {tenant}", e) from e
        return {
            'Arn': response['Arn'],
            'Account': response['Account'],
            'UserId': response.get('UserId', ''),
        }

    def role_arn(self, tenant: str, role_name: str, credentials: Optional[ResolvedCredentials] = None) -> str:
        credentials = credentials or self.factory.resolver.resolve(tenant)
        iam = self.factory.iam_client_for(credentials)
        try:
            response = iam.get_role(RoleName=role_name)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Could not look up IAM role {role_name} for tenant {tenant}: {e}")
            raise IdentityError.from_boto('GetRole', f"role {role_name}", e) from e
        return response['Role']['Arn']

    def current_identity(self, tenant: str, credentials: Optional[ResolvedCredentials] = None) -> Identity:
        credentials = credentials or self.factory.resolver.resolve(tenant)
        caller = self.caller_identity(tenant, credentials)
        arn = caller['Arn']
        principal_type = classify_principal(arn)

        if principal_type is PrincipalType.ASSUMED_ROLE:
            principal_arn = self.role_arn(tenant, role_name_from_arn(arn), credentials)
        elif principal_type is PrincipalType.USER:
            principal_arn = arn
        else:
            raise UnsupportedPrincipalType(arn)

        logger.info(f"Tenant {tenant} is using {principal_type.value} {principal_arn}")
        return Identity(arn, caller['Account'], principal_type, principal_arn)
