"""
Runtime settings and tenant configuration records.

Settings come from environment variables so the same code runs from the CLI
and from Lambda. Tenant records hold the raw KMS config and AWS cloud
provider config for each tenant; credentials.py turns them into typed
credential sources.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

KMS_CONFIG_KEY = 'kms_config'
CLOUD_PROVIDER_KEY = 'cloud_provider'


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name, str(default))
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    config_file: Optional[str] = None
    connect_timeout: float = 5.0
    read_timeout: float = 30.0
    max_attempts: int = 5
    alias_page_size: int = 100
    key_page_size: int = 1000
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        environ = os.environ if environ is None else environ
        return cls(
            config_file=environ.get('TENANT_KMS_CONFIG_FILE') or None,
            connect_timeout=_env_float(environ, 'TENANT_KMS_CONNECT_TIMEOUT', 5.0),
            read_timeout=_env_float(environ, 'TENANT_KMS_READ_TIMEOUT', 30.0),
            max_attempts=_env_int(environ, 'TENANT_KMS_MAX_ATTEMPTS', 5),
            alias_page_size=_env_int(environ, 'TENANT_KMS_ALIAS_PAGE_SIZE', 100),
            key_page_size=_env_int(environ, 'TENANT_KMS_KEY_PAGE_SIZE', 1000),
            log_level=environ.get('LOG_LEVEL', 'INFO').upper(),
        )


class TenantConfigStore(ABC):
    """Read-only lookup of per-tenant configuration records."""

    @abstractmethod
    def get_kms_config(self, tenant: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def get_cloud_provider_config(self, tenant: str) -> Optional[Dict[str, Any]]:
        pass


class InMemoryConfigStore(TenantConfigStore):
    def __init__(self, tenants: Optional[Dict[str, Dict[str, Any]]] = None):
        self._tenants = tenants or {}

    def _record(self, tenant: str, key: str) -> Optional[Dict[str, Any]]:
        record = self._tenants.get(tenant, {}).get(key)
        # Hand out copies so callers cannot edit the stored record
        return dict(record) if record is not None else None

    def get_kms_config(self, tenant: str) -> Optional[Dict[str, Any]]:
        return self._record(tenant, KMS_CONFIG_KEY)

    def get_cloud_provider_config(self, tenant: str) -> Optional[Dict[str, Any]]:
        return self._record(tenant, CLOUD_PROVIDER_KEY)


class JsonFileConfigStore(InMemoryConfigStore):
    """Loads ``{"tenants": {<tenant>: {"kms_config": ..., "cloud_provider": ...}}}``."""

    def __init__(self, path: str):
        self.path = path
        with open(path, 'r', encoding='utf-8') as config_file:
            data = json.load(config_file)
        tenants = data.get('tenants')
        if not isinstance(tenants, dict):
            raise ValueError(f"{path}: expected a 'tenants' object")
        logger.info(f"Loaded configuration for {len(tenants)} tenants from {path}")
        super().__init__(tenants)


def load_config_store(settings: Settings) -> TenantConfigStore:
    if not settings.config_file:
        raise ValueError("TENANT_KMS_CONFIG_FILE is not set")
    return JsonFileConfigStore(settings.config_file)
