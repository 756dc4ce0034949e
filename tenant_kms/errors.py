"""
Exception hierarchy for the tenant KMS integration.

Provider faults keep the AWS error code and message so callers can surface
exactly what KMS, IAM or STS reported.
"""

from typing import Optional

from botocore.exceptions import ClientError


class TenantKmsError(Exception):
    """Base class for every error raised by tenant_kms."""


class CredentialError(TenantKmsError):
    pass


class NoCredentialsFound(CredentialError):
    """No authoritative AWS credential source exists for a tenant."""

    def __init__(self, tenant: str, reason: str = "no KMS config or AWS cloud provider config"):
        self.tenant = tenant
        self.reason = reason
        super().__init__(f"Could not find AWS credentials for tenant {tenant}: {reason}")


class IdentityError(TenantKmsError):
    """The caller's principal could not be determined.

    When STS or IAM reported the fault, ``code`` and ``message`` hold what AWS
    returned.
    """

    def __init__(self, description: str, code: Optional[str] = None, message: Optional[str] = None):
        self.code = code
        self.message = message if message is not None else description
        super().__init__(description)

    @classmethod
    def from_boto(cls, operation: str, subject: str, error: Exception):
        code = None
        message = str(error)
        if isinstance(error, ClientError):
            err = error.response.get('Error', {})
            code = err.get('Code')
            message = err.get('Message', message)
        description = f"{operation} failed for {subject}"
        if code:
            description += f" ({code})"
        return cls(f"{description}: {message}", code=code, message=message)


class UnsupportedPrincipalType(IdentityError):
    """The caller is neither an IAM user nor an assumed role."""

    def __init__(self, arn: str):
        self.arn = arn
        super().__init__(f"Credentials provided are not associated to a user or role: {arn}")


class PolicyBindError(TenantKmsError):
    pass


class ProviderError(TenantKmsError):
    """A KMS/IAM/STS call failed."""

    def __init__(self, operation: str, message: str, code: Optional[str] = None):
        self.operation = operation
        self.code = code
        self.message = message
        if code:
            super().__init__(f"{operation} failed ({code}): {message}")
        else:
            super().__init__(f"{operation} failed: {message}")

    @classmethod
    def from_boto(cls, operation: str, error: Exception, **kwargs):
        if isinstance(error, ClientError):
            err = error.response.get('Error', {})
            return cls(operation, err.get('Message', str(error)), code=err.get('Code'), **kwargs)
        # BotoCoreError (timeouts, endpoint errors) carries no error code
        return cls(operation, str(error), **kwargs)


class DecryptError(ProviderError):
    pass


class OrphanedKeyError(ProviderError):
    """A CMK was created but its alias could not be attached.

    The key is left in place; ``key_id`` identifies it for reconciliation.
    """

    def __init__(self, operation: str, message: str, code: Optional[str] = None,
                 key_id: Optional[str] = None, alias_name: Optional[str] = None):
        self.key_id = key_id
        self.alias_name = alias_name
        super().__init__(operation, message, code=code)

    def __str__(self):
        base = super().__str__()
        return f"{base} (CMK {self.key_id} has no alias {self.alias_name})"
