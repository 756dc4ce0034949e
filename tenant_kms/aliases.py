"""
KMS alias lookup and creation.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .errors import ProviderError

logger = logging.getLogger(__name__)

ALIAS_PREFIX = 'alias/'
DEFAULT_PAGE_SIZE = 100


@dataclass(frozen=True)
class AliasRecord:
    name: str
    target_key_id: Optional[str]


def alias_name(base_name: str) -> str:
    """Prefix an alias base name with ``alias/``.

    The base name must not already carry the prefix.
    """
    if not base_name:
        raise ValueError("Alias base name must not be empty")
    if base_name.startswith(ALIAS_PREFIX):
        raise ValueError(f"Alias base name is already prefixed: {base_name}")
    return f"{ALIAS_PREFIX}{base_name}"


class AliasRegistry:
    def __init__(self, kms_client, page_size: int = DEFAULT_PAGE_SIZE):
        self.kms_client = kms_client
        self.page_size = page_size

    def _pages(self) -> Iterable[dict]:
        # Pages are fetched lazily, so returning early skips the rest
        paginator = self.kms_client.get_paginator('list_aliases')
        return paginator.paginate(PaginationConfig={'PageSize': self.page_size})

    def find(self, name: str) -> Optional[AliasRecord]:
        """Scan alias pages for ``name``, stopping at the first match."""
        try:
            for page in self._pages():
                for alias in page.get('Aliases', []):
                    if alias['AliasName'] == name:
                        logger.debug(f"Found alias {name} targeting {alias.get('TargetKeyId')}")
                        return AliasRecord(alias['AliasName'], alias.get('TargetKeyId'))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error listing KMS aliases while looking for {name}: {e}")
            raise ProviderError.from_boto('ListAliases', e)
        return None

    def list_all(self) -> List[AliasRecord]:
        records = []
        try:
            for page in self._pages():
                for alias in page.get('Aliases', []):
                    records.append(AliasRecord(alias['AliasName'], alias.get('TargetKeyId')))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error listing KMS aliases: {e}")
            raise ProviderError.from_boto('ListAliases', e)
        return records

    def create(self, name: str, cmk_id: str) -> AliasRecord:
        try:
            self.kms_client.create_alias(AliasName=name, TargetKeyId=cmk_id)
        except (ClientError, BotoCoreError) as e:
            raise ProviderError.from_boto('CreateAlias', e)
        logger.info(f"Created alias {name} for CMK {cmk_id}")
        return AliasRecord(name, cmk_id)
