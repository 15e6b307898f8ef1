# backoffice/errors.py
"""
Domain error taxonomy.

Every error here is recoverable at the request boundary: create_app()
registers a JSON handler that turns them into a client-facing payload.
Services raise them inside an atomic() block so the surrounding unit of
work is rolled back before the handler runs.
"""
from __future__ import annotations

from typing import Any


class BackofficeError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, *, field: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.field:
            body["field"] = self.field
        body.update(self.details)
        return body


class ValidationError(BackofficeError):
    """Malformed, missing or out-of-range input."""

    status_code = 400
    code = "validation_error"


class NotFoundError(BackofficeError):
    status_code = 404
    code = "not_found"


class InvalidStateError(BackofficeError):
    """Operation not legal for the document's current status."""

    status_code = 409
    code = "invalid_state"


class InsufficientStockError(BackofficeError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, shortfalls: list[dict[str, Any]]):
        names = ", ".join(
            f'"{s["name"]}" (need {s["requested"]}, have {s["available"]})' for s in shortfalls
        )
        super().__init__(f"Not enough stock for {names}.", details={"shortfalls": shortfalls})
        self.shortfalls = shortfalls


class IntegrityError(BackofficeError):
    """Debt ledger would go negative or document totals do not reconcile."""

    status_code = 409
    code = "integrity_error"


def not_found(kind: str, ident: Any) -> NotFoundError:
    return NotFoundError(f"{kind} {ident} not found.", details={"resource": kind, "id": ident})
