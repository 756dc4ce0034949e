"""
Tenant KMS operations - Lambda Version
Serverless entry point for CMK provisioning and data key wrapping per tenant
"""

import base64
import logging
import os
from typing import Any, Callable, Dict, Optional

from .cli import build_services, decode_ciphertext
from .config import Settings, TenantConfigStore, load_config_store
from .errors import CredentialError, OrphanedKeyError, TenantKmsError
from .models import KeyType

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO').upper())


def _ensure_cmk(services, tenant: str, params: Dict[str, Any]) -> Dict[str, Any]:
    _, lifecycle, _ = services
    cmk_id = lifecycle.create_or_retrieve_cmk(
        tenant,
        params['alias'],
        policy=params.get('policy'),
        description=params.get('description'),
    )
    return {'key_type': KeyType.CMK.value, 'key_id': cmk_id}


def _wrap(services, tenant: str, params: Dict[str, Any]) -> Dict[str, Any]:
    _, _, cipher = services
    ciphertext = cipher.wrap(
        tenant,
        params['key_id'],
        params.get('algorithm', 'AES'),
        int(params.get('key_size', 256)),
    )
    return {
        'key_type': KeyType.DATA_KEY.value,
        'key_id': params['key_id'],
        'ciphertext': base64.b64encode(ciphertext).decode('ascii'),
    }


def _unwrap(services, tenant: str, params: Dict[str, Any]) -> Dict[str, Any]:
    _, _, cipher = services
    plaintext = cipher.unwrap(tenant, decode_ciphertext(params.get('ciphertext')))
    return {'plaintext': base64.b64encode(plaintext).decode('ascii') if plaintext is not None else None}


def _key_arn(services, tenant: str, params: Dict[str, Any]) -> Dict[str, Any]:
    _, lifecycle, _ = services
    handle = lifecycle.get_cmk_handle(tenant, params['key_id'])
    return {'key_id': params['key_id'], 'key_arn': handle.arn if handle else None}


def _orphans(services, tenant: str, params: Dict[str, Any]) -> Dict[str, Any]:
    _, lifecycle, _ = services
    orphans = lifecycle.find_orphaned_keys(tenant)
    return {'orphaned_keys': [{'key_id': key.key_id, 'key_arn': key.arn} for key in orphans]}


def _whoami(services, tenant: str, params: Dict[str, Any]) -> Dict[str, Any]:
    identity, _, _ = services
    current = identity.current_identity(tenant)
    return {
        'account_id': current.account,
        'caller_arn': current.arn,
        'principal_type': current.principal_type.value,
        'principal_arn': current.principal_arn,
    }


ACTIONS: Dict[str, Callable[..., Dict[str, Any]]] = {
    'ensure_cmk': _ensure_cmk,
    'wrap': _wrap,
    'unwrap': _unwrap,
    'key_arn': _key_arn,
    'orphans': _orphans,
    'whoami': _whoami,
}


def lambda_handler(event: Dict[str, Any], context, store: Optional[TenantConfigStore] = None) -> Dict[str, Any]:
    """
    AWS Lambda handler for tenant KMS operations

    Args:
        event: {'action': ..., 'tenant': ..., 'params': {...}}
        context: Lambda context object
        store: tenant configuration store; loaded from TENANT_KMS_CONFIG_FILE when omitted

    Returns:
        Dict with statusCode and body
    """
    execution_id = getattr(context, 'aws_request_id', None)
    action = event.get('action')
    tenant = event.get('tenant')
    params = event.get('params') or {}

    if action not in ACTIONS or not tenant or not isinstance(params, dict):
        logger.error(f"Invalid request - action: {action}, tenant: {tenant}, params: {type(params).__name__}")
        return {
            'statusCode': 400,
            'body': {
                'error': f"Expected one of {', '.join(sorted(ACTIONS))}, a tenant and an object of params",
                'message': 'Tenant KMS request rejected',
                'executionId': execution_id
            }
        }

    try:
        logger.info(f"Starting {action} for tenant {tenant}")
        settings = Settings.from_env()
        services = build_services(settings, store or load_config_store(settings))
        result = ACTIONS[action](services, tenant, params)
        logger.info(f"Completed {action} for tenant {tenant}")
        return {
            'statusCode': 200,
            'body': {
                'message': f'{action} completed successfully',
                'results': result,
                'executionId': execution_id
            }
        }

    except (CredentialError, KeyError, ValueError) as e:
        logger.error(f"{action} rejected for tenant {tenant}: {str(e)}")
        return {
            'statusCode': 400,
            'body': {
                'error': str(e),
                'message': f'{action} failed',
                'executionId': execution_id
            }
        }
    except OrphanedKeyError as e:
        logger.error(f"{action} left an orphaned CMK for tenant {tenant}: {str(e)}")
        return {
            'statusCode': 500,
            'body': {
                'error': str(e),
                'orphaned_key_id': e.key_id,
                'message': f'{action} failed',
                'executionId': execution_id
            }
        }
    except (TenantKmsError, OSError) as e:
        logger.error(f"{action} failed for tenant {tenant}: {str(e)}")
        return {
            'statusCode': 500,
            'body': {
                'error': str(e),
                'message': f'{action} failed',
                'executionId': execution_id
            }
        }
