"""
Per-tenant AWS credential resolution.

A tenant's KMS configuration always wins over its AWS cloud provider
configuration, even when both exist. The result is a plain value handed to
each client that needs it; nothing process-wide is touched.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from .config import TenantConfigStore
from .errors import NoCredentialsFound

logger = logging.getLogger(__name__)

ACCESS_KEY_FIELD = 'AWS_ACCESS_KEY_ID'
SECRET_KEY_FIELD = 'AWS_SECRET_ACCESS_KEY'
REGION_FIELD = 'AWS_REGION'
REGIONS_FIELD = 'regions'


def _require(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} is missing or empty")
    return value


def _missing_fields(record: Dict[str, Any], names: List[str]) -> List[str]:
    return [name for name in names if not isinstance(record.get(name), str) or not record[name].strip()]


@dataclass(frozen=True)
class TenantConfig:
    """Explicit credentials stored in the tenant's KMS configuration."""
    access_key_id: str
    secret_access_key: str = field(repr=False)
    region: str

    kind = 'KMS_CONFIG'

    def __post_init__(self):
        _require(self.access_key_id, ACCESS_KEY_FIELD)
        _require(self.secret_access_key, SECRET_KEY_FIELD)
        _require(self.region, REGION_FIELD)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'TenantConfig':
        missing = _missing_fields(record, [ACCESS_KEY_FIELD, SECRET_KEY_FIELD, REGION_FIELD])
        if missing:
            raise ValueError(f"KMS config is missing {', '.join(missing)}")
        return cls(record[ACCESS_KEY_FIELD], record[SECRET_KEY_FIELD], record[REGION_FIELD])


@dataclass(frozen=True)
class HostEnvironment:
    """Credentials taken from the tenant's AWS cloud provider configuration."""
    access_key_id: str
    secret_access_key: str = field(repr=False)
    region: str

    kind = 'CLOUD_PROVIDER'

    def __post_init__(self):
        _require(self.access_key_id, ACCESS_KEY_FIELD)
        _require(self.secret_access_key, SECRET_KEY_FIELD)
        _require(self.region, 'region code')

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'HostEnvironment':
        missing = _missing_fields(record, [ACCESS_KEY_FIELD, SECRET_KEY_FIELD])
        regions = record.get(REGIONS_FIELD) or []
        if (not isinstance(regions, (list, tuple)) or not regions
                or not isinstance(regions[0], str) or not regions[0].strip()):
            missing.append('region code')
        if missing:
            raise ValueError(f"cloud provider config is missing {', '.join(missing)}")
        # The provider's first region is the one KMS calls are made in
        return cls(record[ACCESS_KEY_FIELD], record[SECRET_KEY_FIELD], regions[0])


CredentialSource = Union[TenantConfig, HostEnvironment]


@dataclass(frozen=True)
class ResolvedCredentials:
    access_key_id: str
    secret_access_key: str = field(repr=False)
    region: str
    source: str

    @classmethod
    def from_source(cls, source: CredentialSource) -> 'ResolvedCredentials':
        return cls(source.access_key_id, source.secret_access_key, source.region, source.kind)


class CredentialResolver:
    """Decides which credential source is authoritative for a tenant."""

    def __init__(self, store: TenantConfigStore):
        self.store = store

    def credential_source(self, tenant: str) -> CredentialSource:
        kms_config = self.store.get_kms_config(tenant)
        if kms_config is not None:
            # Authoritative whenever present; an incomplete record fails closed
            try:
                return TenantConfig.from_record(kms_config)
            except ValueError as e:
                raise NoCredentialsFound(tenant, str(e))

        provider_config = self.store.get_cloud_provider_config(tenant)
        if provider_config is not None:
            try:
                return HostEnvironment.from_record(provider_config)
            except ValueError as e:
                logger.warning(f"Ignoring cloud provider config for tenant {tenant}: {e}")

        raise NoCredentialsFound(tenant)

    def resolve(self, tenant: str) -> ResolvedCredentials:
        source = self.credential_source(tenant)
        logger.debug(f"Using {source.kind} credentials for tenant {tenant} in {source.region}")
        return ResolvedCredentials.from_source(source)
