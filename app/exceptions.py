"""
Domain exceptions for the billing ledger.

Services raise these instead of ``HTTPException`` so that the same rules can
be exercised from scripts and tests without a request context.  ``main.py``
registers a single handler for ``LedgerError`` that turns any of them into a
JSON body of the form ``{"error": "<mensaje>"}`` with the status code carried
by the exception class.

Exception hierarchy::

    LedgerError (base)
    ├── ValidationError     400 — malformed or missing input
    ├── NotFoundError       404 — referenced entity absent
    ├── BusinessRuleError   400 — duplicate budget per plan, overpayment,
    │                             double void, ...
    ├── ConflictError       409 — concurrent writer won the race
    └── ConsistencyFailure  500 — a multi-record write could not complete
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for every error raised by the ledger services.

    Attributes:
        message: Human-readable description returned to the API caller.
        detalles: Optional structured context (field errors, ids, amounts).
    """

    status_code: int = 500

    def __init__(self, message: str, detalles: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detalles = detalles

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.detalles is not None:
            body["detalles"] = self.detalles
        return body


class ValidationError(LedgerError):
    status_code = 400


class NotFoundError(LedgerError):
    status_code = 404


class BusinessRuleError(LedgerError):
    status_code = 400


class ConflictError(LedgerError):
    """Raised when an optimistic version check fails on the budget row."""

    status_code = 409


class ConsistencyFailure(LedgerError):
    status_code = 500
