# Overview: Closed error taxonomy for order operations and its HTTP mapping.

from __future__ import annotations

from enum import Enum

from flask import jsonify


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    CONSTRAINT = "constraint"
    PERSISTENCE = "persistence"
    TIMEOUT = "timeout"


class OrderError(Exception):
    """
    Base class for every error a service may raise.

    Callers switch on `kind` (or the subclass); nothing else escapes the
    service layer.
    """
    kind: ErrorKind = ErrorKind.PERSISTENCE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrderError):
    """400-level input problem, raised before any mutation."""
    kind = ErrorKind.VALIDATION


class NotFoundError(OrderError):
    """Order, item, or reference record missing."""
    kind = ErrorKind.NOT_FOUND


class ConflictError(OrderError):
    """409-level concurrent update (row version mismatch). Retry with fresh data."""
    kind = ErrorKind.CONFLICT


class ConstraintError(OrderError):
    """The record store rejected a computed value (e.g. status CHECK constraint)."""
    kind = ErrorKind.CONSTRAINT


class PersistenceError(OrderError):
    """Any other record store failure."""
    kind = ErrorKind.PERSISTENCE


class StoreTimeoutError(OrderError, TimeoutError):
    """A remote call exceeded its bounded timeout."""
    kind = ErrorKind.TIMEOUT


HTTP_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.CONSTRAINT: 422,
    ErrorKind.PERSISTENCE: 500,
    ErrorKind.TIMEOUT: 504,
}


def error_response(exc: OrderError):
    """Render a typed error as a JSON response tuple."""
    return jsonify({"error": exc.message, "kind": exc.kind.value}), HTTP_STATUS_BY_KIND[exc.kind]
