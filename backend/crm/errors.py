"""Application exception base.

Exceptions carry a stable machine-readable `error_code`; the HTTP status
for each code is decided once, in crm.middleware.exceptions.
"""


class CRMException(Exception):
    """Base exception for CRM application errors."""

    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, error_code: str | None = None):
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        super().__init__(self.message)


class BusinessRuleError(CRMException):
    """A request that is well-formed but violates a business rule."""

    error_code = "BUSINESS_RULE_VIOLATION"


class UnknownPermissionError(CRMException):
    """A permission name that is not in the catalog."""

    error_code = "UNKNOWN_PERMISSION"

    def __init__(self, name: str):
        super().__init__(f"Unknown permission: {name!r}")
        self.name = name
