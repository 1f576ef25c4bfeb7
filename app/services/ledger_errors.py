from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for domain failures; carries a stable code and an HTTP status."""

    code = "ledger_error"
    status_code = 400

    def __init__(self, message: str, *, details: dict[str, Any] | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code:
            self.code = code

    def __str__(self) -> str:
        return self.message


class ValidationError(LedgerError):
    code = "validation_error"
    status_code = 400


class InvalidStateError(LedgerError):
    code = "invalid_state"
    status_code = 409


class InsufficientFundsError(LedgerError):
    code = "insufficient_funds"
    status_code = 400


class InsufficientSharesError(LedgerError):
    code = "insufficient_shares"
    status_code = 400


class NotFoundError(LedgerError):
    code = "not_found"
    status_code = 404


class PortfolioNotFoundError(NotFoundError):
    code = "portfolio_not_found"


class AuthorizationError(LedgerError):
    code = "forbidden"
    status_code = 403


class ConflictError(LedgerError):
    code = "conflict"
    status_code = 409


class ConstraintViolationError(ConflictError):
    code = "constraint_violation"


class StoreUnavailableError(LedgerError):
    code = "store_unavailable"
    status_code = 503
    retry_after_seconds = 5
