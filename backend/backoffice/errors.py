# Overview: Typed error taxonomy raised by the ledger services.

"""
Ledger error taxonomy.

Every service raises one of these (or a plain ValueError for malformed input).
Errors surface to the caller typed and unmodified; the HTTP layer turns them
into JSON using `status_code`, `code` and `details`.

LockTimeout is the only retryable error. Services never retry it themselves.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger errors."""

    status_code = 400
    code = "ledger_error"
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class NotFound(LedgerError):
    status_code = 404
    code = "not_found"


class Conflict(LedgerError):
    status_code = 409
    code = "conflict"


class AlreadyOpen(Conflict):
    code = "already_open"


class AlreadyClosed(Conflict):
    code = "already_closed"


class PreviousRegisterOpen(Conflict):
    code = "previous_register_open"


class InsufficientStock(LedgerError):
    status_code = 409
    code = "insufficient_stock"


class InvalidState(LedgerError):
    status_code = 409
    code = "invalid_state"


class RegisterClosed(InvalidState):
    code = "register_closed"


class Unauthorized(LedgerError):
    status_code = 403
    code = "unauthorized"


class PinNotConfigured(LedgerError):
    status_code = 403
    code = "pin_not_configured"


class VarianceExplanationRequired(LedgerError):
    status_code = 422
    code = "variance_explanation_required"


class LockTimeout(LedgerError):
    """Row contended beyond the configured wait. Safe for the caller to retry."""

    status_code = 503
    code = "lock_timeout"
    retryable = True


class MissingAttributionTarget(LedgerError):
    """No staff or admin user exists to attribute a sale to."""

    status_code = 500
    code = "missing_attribution_target"
