#!/usr/bin/env python3
"""
Manage per-tenant AWS KMS master keys and data keys from the command line.

Credentials for each tenant come from the tenant configuration file; a
tenant's KMS config always takes precedence over its cloud provider config.
"""

import argparse
import base64
import binascii
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from .aliases import alias_name
from .clients import ServiceClientFactory
from .config import Settings, TenantConfigStore, load_config_store
from .credentials import CredentialResolver
from .envelope import EnvelopeCipher
from .errors import CredentialError, IdentityError, OrphanedKeyError, PolicyBindError, ProviderError
from .identity import IdentityResolver
from .lifecycle import KeyLifecycleManager
from .models import KeyType


def build_services(settings: Settings, store: TenantConfigStore):
    """Wire up (identity resolver, lifecycle manager, envelope cipher) for one store."""
    factory = ServiceClientFactory(CredentialResolver(store), settings)
    identity = IdentityResolver(factory)
    return identity, KeyLifecycleManager(factory, identity, settings=settings), EnvelopeCipher(factory)


def read_policy(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    with open(path, 'r', encoding='utf-8') as policy_file:
        policy = policy_file.read()
    # Fail early on a malformed document instead of letting CreateKey reject it
    json.loads(policy)
    return policy


def decode_ciphertext(value: Optional[str]) -> Optional[bytes]:
    if not value:
        return None
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Ciphertext is not valid base64: {e}")


def cmd_whoami(args, identity, lifecycle, cipher) -> int:
    current = identity.current_identity(args.tenant)
    print(f"Using AWS Account: {current.account}")
    print(f"Caller: {current.arn}")
    print(f"Principal type: {current.principal_type.value}")
    print(f"Policy principal: {current.principal_arn}")
    return 0


def cmd_ensure_cmk(args, identity, lifecycle, cipher) -> int:
    cmk_id = lifecycle.create_or_retrieve_cmk(
        args.tenant,
        args.alias,
        policy=read_policy(args.policy_file),
        description=args.description,
    )
    print(json.dumps({'key_type': KeyType.CMK.value, 'alias': alias_name(args.alias), 'key_id': cmk_id}))
    return 0


def cmd_wrap(args, identity, lifecycle, cipher) -> int:
    ciphertext = cipher.wrap(args.tenant, args.key_id, args.algorithm, args.key_size)
    print(json.dumps({
        'key_type': KeyType.DATA_KEY.value,
        'key_id': args.key_id,
        'ciphertext': base64.b64encode(ciphertext).decode('ascii'),
    }))
    return 0


def cmd_unwrap(args, identity, lifecycle, cipher) -> int:
    plaintext = cipher.unwrap(args.tenant, decode_ciphertext(args.ciphertext))
    if plaintext is None:
        print("No ciphertext given - nothing to decrypt")
        return 0
    print(base64.b64encode(plaintext).decode('ascii'))
    return 0


def cmd_key_arn(args, identity, lifecycle, cipher) -> int:
    handle = lifecycle.get_cmk_handle(args.tenant, args.key_id)
    if handle is None:
        print(f"CMK {args.key_id} not found")
        return 1
    print(handle.arn)
    return 0


def cmd_orphans(args, identity, lifecycle, cipher) -> int:
    orphans = lifecycle.find_orphaned_keys(args.tenant)
    if not orphans:
        print("All CMKs have an alias")
        return 0
    print(f"Found {len(orphans)} CMKs without an alias:")
    for key in orphans:
        print(f"  {key.key_id}  {key.arn or ''}")
    return 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Per-tenant AWS KMS master key and data key management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
EXAMPLES:
  # Show which IAM principal a tenant's credentials map to
  tenant-kms --config tenants.json --tenant acme whoami

  # Find or create the CMK behind alias/acme-universe-1
  tenant-kms --config tenants.json --tenant acme ensure-cmk acme-universe-1

  # Generate a wrapped AES-256 data key, then decrypt it
  tenant-kms --config tenants.json --tenant acme wrap KEY_ID
  tenant-kms --config tenants.json --tenant acme unwrap BASE64_CIPHERTEXT

  # List CMKs left without an alias
  tenant-kms --config tenants.json --tenant acme orphans

EXIT CODES:
  0 success, 1 error, 2 CMKs without an alias found
"""
    )
    parser.add_argument('--config', help='Tenant configuration JSON file (default: $TENANT_KMS_CONFIG_FILE)')
    parser.add_argument('--tenant', required=True, help='Tenant identifier')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    whoami = subparsers.add_parser('whoami', help='Show the caller identity for the tenant')
    whoami.set_defaults(handler=cmd_whoami)

    ensure = subparsers.add_parser('ensure-cmk', help='Find or create the CMK for an alias')
    ensure.add_argument('alias', help="Alias base name (without the 'alias/' prefix)")
    ensure.add_argument('--policy-file', help='Custom CMK policy JSON file')
    ensure.add_argument('--description', help='Description for a newly created CMK')
    ensure.set_defaults(handler=cmd_ensure_cmk)

    wrap = subparsers.add_parser('wrap', help='Generate a data key wrapped under a CMK')
    wrap.add_argument('key_id', help='CMK id')
    wrap.add_argument('--algorithm', default='AES', help='Data key algorithm (default: AES)')
    wrap.add_argument('--key-size', type=int, default=256, help='Data key size in bits (default: 256)')
    wrap.set_defaults(handler=cmd_wrap)

    unwrap = subparsers.add_parser('unwrap', help='Decrypt a wrapped data key')
    unwrap.add_argument('ciphertext', nargs='?', help='Base64 ciphertext blob')
    unwrap.set_defaults(handler=cmd_unwrap)

    key_arn = subparsers.add_parser('key-arn', help='Look up the ARN of a CMK')
    key_arn.add_argument('key_id', help='CMK id')
    key_arn.set_defaults(handler=cmd_key_arn)

    orphans = subparsers.add_parser('orphans', help='List CMKs that no alias points at')
    orphans.set_defaults(handler=cmd_orphans)

    return parser


def main(argv: Optional[List[str]] = None, store: Optional[TenantConfigStore] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    if args.config:
        settings = replace(settings, config_file=args.config)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        store = store or load_config_store(settings)
        identity, lifecycle, cipher = build_services(settings, store)
        return args.handler(args, identity, lifecycle, cipher)
    except CredentialError as e:
        print(f"Error: {e}")
        print("Add a KMS config or an AWS cloud provider config for this tenant.")
        return 1
    except OrphanedKeyError as e:
        print(f"Error: {e}")
        print("Run the 'orphans' command to list CMKs that need an alias.")
        return 1
    except (IdentityError, PolicyBindError, ProviderError) as e:
        print(f"Error: {e}")
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
