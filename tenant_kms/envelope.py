"""
Envelope encryption of data keys under a tenant CMK.

wrap() asks KMS for a new data key and keeps only its ciphertext; the
plaintext is only ever recovered through unwrap().
"""

import logging
from typing import Optional, Union

from botocore.exceptions import BotoCoreError, ClientError

from .clients import ServiceClientFactory
from .errors import DecryptError, ProviderError
from .models import CmkHandle

logger = logging.getLogger(__name__)


def key_spec(algorithm: str, key_size_bits: int) -> str:
    return f"{algorithm}_{key_size_bits}"


class EnvelopeCipher:
    def __init__(self, factory: ServiceClientFactory):
        self.factory = factory

    def wrap(self, tenant: str, cmk: Union[CmkHandle, str], algorithm: str = 'AES',
             key_size_bits: int = 256) -> bytes:
        """Generate a data key under ``cmk`` and return its ciphertext blob."""
        key_id = cmk.key_id if isinstance(cmk, CmkHandle) else cmk
        kms_client = self.factory.kms_client(tenant)
        try:
            response = kms_client.generate_data_key_without_plaintext(
                KeyId=key_id,
                KeySpec=key_spec(algorithm, key_size_bits),
            )
        except (ClientError, BotoCoreError) as e:
            raise ProviderError.from_boto('GenerateDataKeyWithoutPlaintext', e)
        logger.debug(f"Generated {key_spec(algorithm, key_size_bits)} data key under CMK {key_id}")
        return bytes(response['CiphertextBlob'])

    def unwrap(self, tenant: str, ciphertext: Optional[bytes]) -> Optional[bytes]:
        """Decrypt a wrapped data key.

        Returns None when there is nothing to decrypt, without calling KMS.
        """
        if not ciphertext:
            return None
        kms_client = self.factory.kms_client(tenant)
        try:
            response = kms_client.decrypt(CiphertextBlob=bytes(ciphertext))
        except (ClientError, BotoCoreError) as e:
            raise DecryptError.from_boto('Decrypt', e)
        return bytes(response['Plaintext'])
