import itertools
import os
import uuid

import pytest
from botocore.exceptions import ClientError

from tenant_kms.clients import ServiceClientFactory
from tenant_kms.config import InMemoryConfigStore, Settings
from tenant_kms.credentials import CredentialResolver

ACCOUNT_ID = '123456789012'
USER_ARN = f'arn:aws:iam::{ACCOUNT_ID}:user/kms-admin'
ROLE_ARN = f'arn:aws:iam::{ACCOUNT_ID}:role/KmsOperator'
ASSUMED_ROLE_ARN = f'arn:aws:sts::{ACCOUNT_ID}:assumed-role/KmsOperator/session-1'


def client_error(code, message, operation):
    return ClientError({'Error': {'Code': code, 'Message': message}}, operation)


class FakePaginator:
    """Serves a list in Marker/NextMarker/Truncated pages like KMS does."""

    def __init__(self, kms, operation, result_key, items):
        self.kms = kms
        self.operation = operation
        self.result_key = result_key
        self.items = items

    def paginate(self, PaginationConfig=None):
        page_size = (PaginationConfig or {}).get('PageSize', 100)
        for start in range(0, max(len(self.items), 1), page_size):
            self.kms.calls.append((self.operation, {'Limit': page_size, 'Marker': start or None}))
            chunk = self.items[start:start + page_size]
            truncated = start + page_size < len(self.items)
            page = {self.result_key: list(chunk), 'Truncated': truncated}
            if truncated:
                page['NextMarker'] = str(start + page_size)
            yield page


class FakeKms:
    """In-memory KMS that records every call and every data key it wraps."""

    def __init__(self, account=ACCOUNT_ID, region='us-east-1'):
        self.account = account
        self.region = region
        self.keys = []
        self.aliases = []
        self.calls = []
        self.wrapped = {}
        self.fail_create_alias = None
        self._counter = itertools.count(1)

    def calls_to(self, operation):
        return [params for name, params in self.calls if name == operation]

    def add_key(self, key_id=None):
        key_id = key_id or str(uuid.uuid4())
        arn = f'arn:aws:kms:{self.region}:{self.account}:key/{key_id}'
        self.keys.append({'KeyId': key_id, 'KeyArn': arn})
        return key_id

    def add_alias(self, name, key_id):
        self.aliases.append({
            'AliasName': name,
            'AliasArn': f'arn:aws:kms:{self.region}:{self.account}:{name}',
            'TargetKeyId': key_id,
        })

    def get_paginator(self, operation):
        if operation == 'list_aliases':
            return FakePaginator(self, operation, 'Aliases', self.aliases)
        if operation == 'list_keys':
            return FakePaginator(self, operation, 'Keys', self.keys)
        raise ValueError(operation)

    def create_key(self, **kwargs):
        self.calls.append(('create_key', kwargs))
        key_id = self.add_key()
        return {'KeyMetadata': {'KeyId': key_id, 'Arn': self.keys[-1]['KeyArn']}}

    def create_alias(self, AliasName, TargetKeyId):
        self.calls.append(('create_alias', {'AliasName': AliasName, 'TargetKeyId': TargetKeyId}))
        if self.fail_create_alias:
            raise self.fail_create_alias
        if any(alias['AliasName'] == AliasName for alias in self.aliases):
            raise client_error('AlreadyExistsException', f'An alias with the name {AliasName} already exists',
                               'CreateAlias')
        self.add_alias(AliasName, TargetKeyId)

    def generate_data_key_without_plaintext(self, KeyId, KeySpec):
        self.calls.append(('generate_data_key_without_plaintext', {'KeyId': KeyId, 'KeySpec': KeySpec}))
        size = int(KeySpec.split('_')[1]) // 8
        plaintext = os.urandom(size)
        ciphertext = f'wrapped:{KeyId}:{next(self._counter)}'.encode()
        self.wrapped[ciphertext] = plaintext
        return {'CiphertextBlob': ciphertext, 'KeyId': KeyId}

    def decrypt(self, CiphertextBlob):
        self.calls.append(('decrypt', {'CiphertextBlob': CiphertextBlob}))
        if CiphertextBlob not in self.wrapped:
            raise client_error('InvalidCiphertextException', 'The ciphertext is invalid', 'Decrypt')
        return {'Plaintext': self.wrapped[CiphertextBlob]}


class FakeSts:
    def __init__(self, arn=USER_ARN, account=ACCOUNT_ID):
        self.arn = arn
        self.account = account
        self.calls = 0

    def get_caller_identity(self):
        self.calls += 1
        return {'Arn': self.arn, 'Account': self.account, 'UserId': 'AIDAEXAMPLE'}


class FakeIam:
    def __init__(self, roles=None):
        self.roles = roles if roles is not None else {'KmsOperator': ROLE_ARN}
        self.requested = []

    def get_role(self, RoleName):
        self.requested.append(RoleName)
        if RoleName not in self.roles:
            raise client_error('NoSuchEntity', f'The role with name {RoleName} cannot be found.', 'GetRole')
        return {'Role': {'RoleName': RoleName, 'Arn': self.roles[RoleName]}}


class FakeClientFactory(ServiceClientFactory):
    """Hands out fake clients and records which credentials each was built with."""

    def __init__(self, resolver, kms=None, sts=None, iam=None, settings=None):
        super().__init__(resolver, settings or Settings())
        self.clients = {'kms': kms or FakeKms(), 'sts': sts or FakeSts(), 'iam': iam or FakeIam()}
        self.built = []

    def client_for(self, service, credentials):
        self.built.append((service, credentials))
        return self.clients[service]


TENANTS = {
    'acme': {
        'kms_config': {
            'AWS_ACCESS_KEY_ID': 'AKIAKMSCONFIG',
            'AWS_SECRET_ACCESS_KEY': 'kms-secret',
            'AWS_REGION': 'us-west-2',
        },
        'cloud_provider': {
            'AWS_ACCESS_KEY_ID': 'AKIAPROVIDER',
            'AWS_SECRET_ACCESS_KEY': 'provider-secret',
            'regions': ['eu-west-1'],
        },
    },
    'globex': {
        'cloud_provider': {
            'AWS_ACCESS_KEY_ID': 'AKIAGLOBEX',
            'AWS_SECRET_ACCESS_KEY': 'globex-secret',
            'regions': ['ap-southeast-2', 'ap-southeast-1'],
        },
    },
}


@pytest.fixture
def store():
    return InMemoryConfigStore(TENANTS)


@pytest.fixture
def resolver(store):
    return CredentialResolver(store)


@pytest.fixture
def kms():
    return FakeKms()


@pytest.fixture
def sts():
    return FakeSts()


@pytest.fixture
def iam():
    return FakeIam()


@pytest.fixture
def factory(resolver, kms, sts, iam):
    return FakeClientFactory(resolver, kms=kms, sts=sts, iam=iam)
