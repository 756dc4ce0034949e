"""
CMK key policy templating.

The default template has two principal-bearing statements: statement 0
grants the account root full access, statement 1 grants the calling user or
role operational access. Binding never modifies the template it is given.
"""

import copy
import json
import os
from functools import lru_cache
from typing import Any, Dict

from .errors import PolicyBindError

DEFAULT_POLICY_PATH = os.path.join(os.path.dirname(__file__), 'data', 'default_cmk_policy.json')

ROOT_STATEMENT = 0
CALLER_STATEMENT = 1


def root_arn_for_account(account: str) -> str:
    return f"arn:aws:iam::{account}:root"


@lru_cache(maxsize=1)
def _load_default_template() -> str:
    with open(DEFAULT_POLICY_PATH, 'r', encoding='utf-8') as policy_file:
        return policy_file.read()


def default_policy_template() -> Dict[str, Any]:
    """Return a fresh copy of the default CMK policy template."""
    return json.loads(_load_default_template())


def _bind_statement(statement: Any, arn: str, index: int) -> None:
    if not isinstance(statement, dict) or not isinstance(statement.get('Principal'), dict):
        raise PolicyBindError(f"Policy statement {index} has no Principal object to bind")
    statement['Principal']['AWS'] = arn


def bind_policy(template: Dict[str, Any], principal_arn: str, root_arn: str) -> Dict[str, Any]:
    """Fill the root and caller principals of a policy template.

    Returns a new document; ``template`` is left untouched.
    """
    if not principal_arn or not root_arn:
        raise PolicyBindError("Both the caller ARN and the account root ARN are required")
    statements = template.get('Statement') if isinstance(template, dict) else None
    if not isinstance(statements, list) or len(statements) < 2:
        raise PolicyBindError("Policy template must contain at least two statements")

    policy = copy.deepcopy(template)
    _bind_statement(policy['Statement'][ROOT_STATEMENT], root_arn, ROOT_STATEMENT)
    _bind_statement(policy['Statement'][CALLER_STATEMENT], principal_arn, CALLER_STATEMENT)
    return policy


def render_policy(policy: Dict[str, Any]) -> str:
    return json.dumps(policy, sort_keys=True, separators=(',', ':'))
