"""
errors.py — AppError, the error-kind taxonomy, and the error code registry.

Every error returned by the SharedCart API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Services decide the ErrorKind. Only the HTTP boundary (the error handler
    in app/__init__.py) turns a kind into a status code.
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate AUTHENTICATION (401) with AUTHORIZATION (403).
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    """Closed set of failure categories. Callers branch on this, never on message text."""
    NOT_FOUND      = "not_found"
    AUTHORIZATION  = "authorization"
    AUTHENTICATION = "authentication"
    STATE_CONFLICT = "state_conflict"
    VALIDATION     = "validation"
    INTERNAL       = "internal"


# Transport mapping used by the Flask error handler.
HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND:      404,
    ErrorKind.AUTHORIZATION:  403,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.STATE_CONFLICT: 409,
    ErrorKind.VALIDATION:     422,
    ErrorKind.INTERNAL:       500,
}


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            kind: ErrorKind,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code    = code
        self.message = message
        self.kind    = kind
        self.field   = field  # which request field caused the error

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"kind={self.kind.value!r}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by kind. The HTTP status follows from the kind.
# These are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400, raised by marshmallow) ────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    DUPLICATE_ITEM_OWNER       = "DUPLICATE_ITEM_OWNER"

    # ── Validation (422) ──────────────────────────────────────────────────
    BILL_TOTAL_MISMATCH        = "BILL_TOTAL_MISMATCH"
    ITEM_OWNERS_REQUIRED       = "ITEM_OWNERS_REQUIRED"
    INVALID_ITEM               = "INVALID_ITEM"
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    OWNER_NOT_MEMBER           = "OWNER_NOT_MEMBER"
    EMPTY_BILL_SELECTION       = "EMPTY_BILL_SELECTION"

    # ── State conflict (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"
    ALREADY_MEMBER             = "ALREADY_MEMBER"
    LAST_ADMIN                 = "LAST_ADMIN"
    BILL_NOT_PENDING           = "BILL_NOT_PENDING"
    BILL_HAS_NO_ITEMS          = "BILL_HAS_NO_ITEMS"
    BILL_ALREADY_SETTLED       = "BILL_ALREADY_SETTLED"
    SETTLEMENT_NOT_PENDING     = "SETTLEMENT_NOT_PENDING"
    SETTLEMENT_NOT_CONFIRMED   = "SETTLEMENT_NOT_CONFIRMED"
    TRANSACTION_ALREADY_PAID   = "TRANSACTION_ALREADY_PAID"

    # ── Not Found (404) ───────────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    MEMBER_NOT_FOUND           = "MEMBER_NOT_FOUND"
    BILL_NOT_FOUND             = "BILL_NOT_FOUND"
    ITEM_NOT_FOUND             = "ITEM_NOT_FOUND"
    SETTLEMENT_NOT_FOUND       = "SETTLEMENT_NOT_FOUND"
    TRANSACTION_NOT_FOUND      = "TRANSACTION_NOT_FOUND"

    # ── Authentication (401) ──────────────────────────────────────────────
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"
    TOKEN_MISSING              = "TOKEN_MISSING"
    TOKEN_INVALID              = "TOKEN_INVALID"
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"
    REFRESH_TOKEN_INVALID      = "REFRESH_TOKEN_INVALID"

    # ── Authorization (403) ───────────────────────────────────────────────
    FORBIDDEN                  = "FORBIDDEN"

    # ── System Errors (500) ───────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"
