"""Access-control failure taxonomy.

Each check in the auth gate raises exactly one of these. They are
transport-agnostic: the status code for each `error_code` lives in
crm.middleware.exceptions.
"""

from crm.errors import CRMException


class AccessError(CRMException):
    """Base class for every access-control outcome other than 'admitted'."""


class AuthenticationRequired(AccessError):
    error_code = "AUTHENTICATION_REQUIRED"

    def __init__(self, message: str = "Access token required"):
        super().__init__(message)


class InvalidCredential(AccessError):
    error_code = "INVALID_CREDENTIAL"

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class AccountInactive(AccessError):
    error_code = "ACCOUNT_INACTIVE"

    def __init__(self, message: str = "User account is not active"):
        super().__init__(message)


class InsufficientPermissions(AccessError):
    error_code = "INSUFFICIENT_PERMISSIONS"

    def __init__(self, permission: str, message: str | None = None):
        super().__init__(message or f"Insufficient permissions: requires {permission}")
        self.permission = permission


class ResourceAccessDenied(AccessError):
    error_code = "RESOURCE_ACCESS_DENIED"

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"Access denied to {resource_type} {resource_id}")
        self.resource_type = resource_type
        self.resource_id = resource_id


class ResourceNotFound(AccessError):
    error_code = "RESOURCE_NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} not found: {resource_id}")
        self.resource_type = resource_type
        self.resource_id = resource_id


class InfrastructureFailure(AccessError):
    """The store could not answer. Never to be read as 'no permission'."""

    error_code = "INFRASTRUCTURE_FAILURE"

    def __init__(self, message: str = "Permission store unavailable"):
        super().__init__(message)
