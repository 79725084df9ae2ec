"""
Core error taxonomy.

Soft business outcomes (extraction failure, no eligible crew, send failure)
are return values. Only the conditions below are raised:

- InputError          -> 400  malformed input, nothing mutated
- NotFoundError       -> 404  referenced record missing for this tenant
- NoActiveTenantError -> 404  no business configured (never a default tenant)
- AuthorizationError  -> 403  role lacks the capability
- StateConflictError  -> 409  record is no longer in the expected state
- TokenExpiredError   -> 410  click-to-call link past its expiry
"""


class LawnOpsError(Exception):
    """Base class for errors raised by the core."""

    status_code = 500

    def __init__(self, message: str, code: str = "error"):
        super().__init__(message)
        self.message = message
        self.code = code


class InputError(LawnOpsError):
    status_code = 400

    def __init__(self, message: str, code: str = "invalid_input"):
        super().__init__(message, code)


class NotFoundError(LawnOpsError):
    status_code = 404

    def __init__(self, message: str, code: str = "not_found"):
        super().__init__(message, code)


class NoActiveTenantError(LawnOpsError):
    """No business is configured for the number or user that made the call."""

    status_code = 404

    def __init__(self, message: str = "No active tenant configured", code: str = "no_active_tenant"):
        super().__init__(message, code)


class AuthorizationError(LawnOpsError):
    status_code = 403

    def __init__(self, message: str, code: str = "forbidden"):
        super().__init__(message, code)


class StateConflictError(LawnOpsError):
    """The record changed state underneath the caller. Re-fetch and retry."""

    status_code = 409

    def __init__(self, message: str, code: str = "state_conflict", current_status: str | None = None):
        super().__init__(message, code)
        self.current_status = current_status


class TokenExpiredError(LawnOpsError):
    """A short-lived token was found but is past its expiry."""

    status_code = 410

    def __init__(self, message: str = "Token expired", code: str = "token_expired"):
        super().__init__(message, code)
