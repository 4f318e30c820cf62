"""
Error taxonomy for cash sessions and ledger postings.

Every error carries a stable ``kind`` so clients can branch on it, the HTTP
status the API answers with, and optional structured ``details``.
Business-rule errors are raised before any write happens.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every expected failure of a cash/ledger operation."""

    kind = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "kind": self.kind}
        payload.update(self.details)
        return payload


class ValidationError(LedgerError):
    """400-level input problem. ``details["errors"]`` lists every violation."""

    kind = "VALIDATION"
    status_code = 400

    def __init__(self, message: str, errors: list[str] | None = None):
        errors = list(errors) if errors else [message]
        super().__init__(message, details={"errors": errors})
        self.errors = errors


class NotFoundError(LedgerError):
    kind = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, message: str | None = None):
        super().__init__(message or f"{resource} not found", details={"resource": resource})
        self.resource = resource


class InvalidStateError(LedgerError):
    """Operation attempted against a record that is not in the required state."""

    kind = "INVALID_STATE"
    status_code = 409

    def __init__(self, message: str, status: str | None = None):
        super().__init__(message, details={"status": status} if status else None)
        self.status = status


class SessionStatusError(InvalidStateError):
    kind = "SESSION_STATUS"

    def __init__(self, status: str, message: str | None = None):
        super().__init__(
            message or f"Cash session must be OPEN (current status: {status})",
            status=status,
        )


class MismatchError(LedgerError):
    kind = "MISMATCH"
    status_code = 409


class SessionMismatchError(MismatchError):
    kind = "SESSION_MISMATCH"

    def __init__(self, message: str = "Cash session does not belong to the given point of sale"):
        super().__init__(message)


class UserMismatchError(MismatchError):
    kind = "USER_MISMATCH"

    def __init__(self, message: str = "User does not match the user who opened the cash session"):
        super().__init__(message)


class ConflictError(LedgerError):
    """409-level uniqueness or idempotency violation."""

    kind = "CONFLICT"
    status_code = 409


class MissingCompanyError(LedgerError):
    kind = "MISSING_COMPANY"
    status_code = 409

    def __init__(self, message: str = "Could not determine the company of the point of sale to check the cash balance"):
        super().__init__(message)


class NoCashAvailableError(LedgerError):
    kind = "NO_CASH_AVAILABLE"
    status_code = 409

    def __init__(self, available_cash: float, account_code: str):
        super().__init__(
            f"No cash available in cash account ({account_code}). Current balance: {available_cash:.2f}",
            details={"available_cash": available_cash, "account_code": account_code},
        )
        self.available_cash = available_cash


class InsufficientCashError(LedgerError):
    kind = "INSUFFICIENT_CASH"
    status_code = 409

    def __init__(self, available_cash: float, account_code: str):
        super().__init__(
            f"Amount exceeds the available balance of cash account ({account_code}). Available: {available_cash:.2f}",
            details={"available_cash": available_cash, "account_code": account_code},
        )
        self.available_cash = available_cash


class InternalError(LedgerError):
    """Unexpected store or infrastructure failure; the unit of work was rolled back."""

    kind = "INTERNAL"
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
