import base64
from unittest.mock import MagicMock

import pytest

from conftest import client_error
from tenant_kms import lambda_function
from tenant_kms.envelope import EnvelopeCipher
from tenant_kms.identity import IdentityResolver
from tenant_kms.lifecycle import KeyLifecycleManager


@pytest.fixture
def context():
    context = MagicMock()
    context.aws_request_id = 'req-123'
    return context


@pytest.fixture
def fake_services(monkeypatch, factory):
    services = (IdentityResolver(factory), KeyLifecycleManager(factory), EnvelopeCipher(factory))
    monkeypatch.setattr(lambda_function, 'build_services', lambda settings, store: services)
    return services


def test_rejects_unknown_action(context, store):
    response = lambda_function.lambda_handler({'action': 'rotate', 'tenant': 'acme'}, context, store=store)
    assert response['statusCode'] == 400
    assert response['body']['executionId'] == 'req-123'


def test_ensure_cmk(fake_services, context, store, kms):
    event = {'action': 'ensure_cmk', 'tenant': 'acme', 'params': {'alias': 'universe-1'}}
    response = lambda_function.lambda_handler(event, context, store=store)

    assert response['statusCode'] == 200
    assert response['body']['results'] == {'key_type': 'CMK', 'key_id': kms.keys[0]['KeyId']}


def test_wrap_and_unwrap(fake_services, context, store, kms):
    key_id = kms.add_key()
    wrapped = lambda_function.lambda_handler(
        {'action': 'wrap', 'tenant': 'acme', 'params': {'key_id': key_id, 'key_size': '128'}}, context, store=store)
    ciphertext = wrapped['body']['results']['ciphertext']

    unwrapped = lambda_function.lambda_handler(
        {'action': 'unwrap', 'tenant': 'acme', 'params': {'ciphertext': ciphertext}}, context, store=store)

    plaintext = base64.b64decode(unwrapped['body']['results']['plaintext'])
    assert plaintext == kms.wrapped[base64.b64decode(ciphertext)]
    assert len(plaintext) == 16


def test_unwrap_without_ciphertext(context, store):
    response = lambda_function.lambda_handler({'action': 'unwrap', 'tenant': 'acme'}, context, store=store)
    assert response['statusCode'] == 200
    assert response['body']['results'] == {'plaintext': None}


def test_missing_credentials_is_client_error(context, store):
    response = lambda_function.lambda_handler(
        {'action': 'whoami', 'tenant': 'initech'}, context, store=store)
    assert response['statusCode'] == 400
    assert 'initech' in response['body']['error']


def test_missing_param_is_client_error(fake_services, context, store):
    response = lambda_function.lambda_handler({'action': 'ensure_cmk', 'tenant': 'acme'}, context, store=store)
    assert response['statusCode'] == 400


def test_orphaned_key_reported(fake_services, context, store, kms):
    kms.fail_create_alias = client_error('LimitExceededException', 'Too many aliases', 'CreateAlias')
    event = {'action': 'ensure_cmk', 'tenant': 'acme', 'params': {'alias': 'universe-1'}}

    response = lambda_function.lambda_handler(event, context, store=store)

    assert response['statusCode'] == 500
    assert response['body']['orphaned_key_id'] == kms.keys[0]['KeyId']


def test_provider_failure(fake_services, context, store, kms):
    kms.add_key('key-1')
    response = lambda_function.lambda_handler(
        {'action': 'unwrap', 'tenant': 'acme', 'params': {'ciphertext': base64.b64encode(b'junk').decode()}},
        context, store=store)
    assert response['statusCode'] == 500
    assert 'InvalidCiphertextException' in response['body']['error']


def test_null_params_treated_as_empty(fake_services, context, store):
    response = lambda_function.lambda_handler(
        {'action': 'ensure_cmk', 'tenant': 'acme', 'params': None}, context, store=store)
    assert response['statusCode'] == 400
    assert response['body']['executionId'] == 'req-123'


def test_null_params_allowed_for_unwrap(context, store):
    response = lambda_function.lambda_handler(
        {'action': 'unwrap', 'tenant': 'acme', 'params': None}, context, store=store)
    assert response['statusCode'] == 200
    assert response['body']['results'] == {'plaintext': None}


@pytest.mark.parametrize('params', [['universe-1'], 'universe-1', 42])
def test_non_object_params_rejected(context, store, params):
    response = lambda_function.lambda_handler(
        {'action': 'ensure_cmk', 'tenant': 'acme', 'params': params}, context, store=store)
    assert response['statusCode'] == 400
    assert 'params' in response['body']['error']


def test_unwrap_rejects_bad_base64(fake_services, context, store, kms):
    response = lambda_function.lambda_handler(
        {'action': 'unwrap', 'tenant': 'acme', 'params': {'ciphertext': 'not base64!'}}, context, store=store)
    assert response['statusCode'] == 400
    assert 'not valid base64' in response['body']['error']
    assert kms.calls_to('decrypt') == []
