"""
Create-or-retrieve orchestration for a tenant's customer master key.

The alias ``alias/<base name>`` is the only record of which CMK belongs to a
tenant; KMS is the source of truth and nothing is cached here.
"""

import json
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from botocore.exceptions import BotoCoreError, ClientError

from .aliases import AliasRegistry, alias_name
from .clients import ServiceClientFactory
from .config import Settings
from .credentials import ResolvedCredentials
from .errors import OrphanedKeyError, ProviderError
from .identity import IdentityResolver
from .models import CmkHandle, OrphanedKey
from .policy import bind_policy, default_policy_template, render_policy, root_arn_for_account

logger = logging.getLogger(__name__)

PolicyInput = Union[str, Dict[str, Any], None]


class KeyLifecycleManager:
    def __init__(self, factory: ServiceClientFactory,
                 identity_resolver: Optional[IdentityResolver] = None,
                 policy_template: Optional[Dict[str, Any]] = None,
                 settings: Optional[Settings] = None):
        self.factory = factory
        self.identity_resolver = identity_resolver or IdentityResolver(factory)
        self.policy_template = policy_template if policy_template is not None else default_policy_template()
        self.settings = settings or factory.settings
        # (tenant, alias) -> [lock, number of callers holding or waiting on it]
        self._locks: Dict[Tuple[str, str], list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _alias_lock(self, tenant: str, name: str) -> Iterator[None]:
        key = (tenant, name)
        with self._locks_guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def _alias_registry(self, kms_client) -> AliasRegistry:
        return AliasRegistry(kms_client, page_size=self.settings.alias_page_size)

    def default_policy(self, tenant: str, credentials: Optional[ResolvedCredentials] = None) -> str:
        """Bind the default template to the tenant's caller and account root."""
        identity = self.identity_resolver.current_identity(tenant, credentials)
        policy = bind_policy(self.policy_template, identity.principal_arn, root_arn_for_account(identity.account))
        return render_policy(policy)

    def _resolve_policy(self, tenant: str, credentials: ResolvedCredentials, policy: PolicyInput) -> str:
        if isinstance(policy, dict):
            return json.dumps(policy)
        if policy:
            return policy
        return self.default_policy(tenant, credentials)

    def _create_key(self, kms_client, policy: str, description: Optional[str]) -> CmkHandle:
        request = {'Policy': policy}
        if description is not None:
            request['Description'] = description
        try:
            response = kms_client.create_key(**request)
        except (ClientError, BotoCoreError) as e:
            raise ProviderError.from_boto('CreateKey', e)
        metadata = response['KeyMetadata']
        return CmkHandle(metadata['KeyId'], metadata.get('Arn'))

    def create_or_retrieve_cmk(self, tenant: str, alias_base_name: str,
                               policy: PolicyInput = None, description: Optional[str] = None) -> str:
        """Return the id of the CMK behind ``alias/<alias_base_name>``, creating it if needed.

        A caller-supplied ``policy`` is used verbatim; otherwise the default
        template is bound to the tenant's identity. If the alias cannot be
        created after the key was, OrphanedKeyError reports the new key id.
        """
        name = alias_name(alias_base_name)
        with self._alias_lock(tenant, name):
            credentials = self.factory.resolver.resolve(tenant)
            kms_client = self.factory.kms_client_for(credentials)
            registry = self._alias_registry(kms_client)

            existing = registry.find(name)
            if existing is not None:
                logger.info(f"Using existing CMK {existing.target_key_id} for {name} (tenant {tenant})")
                return existing.target_key_id

            key_policy = self._resolve_policy(tenant, credentials, policy)
            cmk = self._create_key(kms_client, key_policy, description)
            logger.info(f"Created CMK {cmk.key_id} for tenant {tenant}")

            try:
                registry.create(name, cmk.key_id)
            except ProviderError as e:
                logger.error(f"CMK {cmk.key_id} was created but alias {name} was not: {e.message}")
                raise OrphanedKeyError('CreateAlias', e.message, code=e.code,
                                       key_id=cmk.key_id, alias_name=name) from e
            return cmk.key_id

    def _list_keys(self, kms_client) -> List[CmkHandle]:
        keys = []
        try:
            paginator = kms_client.get_paginator('list_keys')
            for page in paginator.paginate(PaginationConfig={'PageSize': self.settings.key_page_size}):
                keys.extend(CmkHandle(key['KeyId'], key.get('KeyArn')) for key in page.get('Keys', []))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error retrieving KMS keys: {e}")
            raise ProviderError.from_boto('ListKeys', e)
        return keys

    def get_cmk_handle(self, tenant: str, cmk_id: str) -> Optional[CmkHandle]:
        """Look up the ARN of ``cmk_id``; None if the account has no such key."""
        kms_client = self.factory.kms_client(tenant)
        try:
            paginator = kms_client.get_paginator('list_keys')
            for page in paginator.paginate(PaginationConfig={'PageSize': self.settings.key_page_size}):
                for key in page.get('Keys', []):
                    if key['KeyId'] == cmk_id:
                        return CmkHandle(key['KeyId'], key.get('KeyArn'))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error retrieving KMS keys while looking for {cmk_id}: {e}")
            raise ProviderError.from_boto('ListKeys', e)
        return None

    def find_orphaned_keys(self, tenant: str) -> List[OrphanedKey]:
        """List CMKs in the tenant's account that no alias targets."""
        kms_client = self.factory.kms_client(tenant)
        aliased = {record.target_key_id for record in self._alias_registry(kms_client).list_all()
                   if record.target_key_id}
        orphans = [OrphanedKey(key.key_id, key.arn) for key in self._list_keys(kms_client)
                   if key.key_id not in aliased]
        if orphans:
            logger.warning(f"Found {len(orphans)} CMKs without an alias for tenant {tenant}")
        return orphans
