"""Per-tenant AWS KMS encryption-at-rest integration."""

from .aliases import AliasRecord, AliasRegistry, alias_name
from .clients import ServiceClientFactory
from .config import InMemoryConfigStore, JsonFileConfigStore, Settings, TenantConfigStore
from .credentials import CredentialResolver, HostEnvironment, ResolvedCredentials, TenantConfig
from .envelope import EnvelopeCipher, key_spec
from .errors import (
    CredentialError,
    DecryptError,
    IdentityError,
    NoCredentialsFound,
    OrphanedKeyError,
    PolicyBindError,
    ProviderError,
    TenantKmsError,
    UnsupportedPrincipalType,
)
from .identity import Identity, IdentityResolver, PrincipalType
from .lifecycle import KeyLifecycleManager
from .models import CmkHandle, KeyType, OrphanedKey
from .policy import bind_policy, default_policy_template, root_arn_for_account

__version__ = '0.1.0'
