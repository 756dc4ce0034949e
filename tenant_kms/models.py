from dataclasses import dataclass
from enum import Enum
from typing import Optional


class KeyType(Enum):
    CMK = 'CMK'
    DATA_KEY = 'DATA_KEY'


@dataclass(frozen=True)
class CmkHandle:
    """A master key held by KMS; referenced here, never owned."""
    key_id: str
    arn: Optional[str] = None


class OrphanedKey(CmkHandle):
    """A CMK that no alias points at."""
