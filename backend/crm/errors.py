# Overview: Exception taxonomy shared by services and routes.

"""
Every service-level failure is an ApiError subclass carrying the HTTP status
it maps to. Routes catch ApiError and hand it to api_response.api_error_response;
anything else is a 500 handled by the app-level error handler.
"""

from __future__ import annotations


class ApiError(Exception):
    status_code = 500
    error_code: str | None = None

    def __init__(self, message: str, status_code: int | None = None, error_code: str | None = None, **extra):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        # Extra keys merged into the error envelope (e.g. duplicateNames)
        self.extra = extra


class ValidationError(ApiError, ValueError):
    """400-level input problem."""
    status_code = 400


class DuplicateError(ApiError, ValueError):
    """Unique business key already taken (customer name, product model/package pair)."""
    status_code = 400
    error_code = "DUPLICATE_ENTRY"


class ConflictError(ApiError, ValueError):
    """409-level business rule conflict (e.g., username already registered)."""
    status_code = 409


class UnauthorizedError(ApiError):
    status_code = 401


class ForbiddenError(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class InsufficientStockError(ApiError):
    status_code = 400
    error_code = "INSUFFICIENT_STOCK"

    def __init__(self, current_stock: int):
        super().__init__(f"库存不足，当前库存: {current_stock}", currentStock=current_stock)
        self.current_stock = current_stock
