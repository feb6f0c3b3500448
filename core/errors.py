"""
core/errors.py -- Domain error taxonomy.

Every error raised by the guard, the actions and the stores on purpose derives
from AdminError. The action boundary (actions/base.py) catches all of them,
logs the detail, and returns a generic message to the caller.

code is a stable machine-readable string used in server logs only.
"""


class AdminError(Exception):
    code = "admin_error"


class UnauthorizedError(AdminError):
    """No session, inactive user, or missing permission."""

    code = "unauthorized"


class ValidationFailedError(AdminError):
    """Input rejected by a business rule that the schema cannot express."""

    code = "validation_failed"


class NotFoundError(AdminError):
    code = "not_found"


class PolicyViolationError(AdminError):
    """Forbidden by policy: system-managed records and self-targeted deletes."""

    code = "policy_violation"
