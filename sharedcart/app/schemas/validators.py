"""
schemas/validators.py — Field validators shared by the request schemas.

Schemas are the primary gate for request shape; the DB CHECK constraints in
app/models/ are the last resort. Cross-entity rules (membership, bill state,
totals against items) need a DB lookup or Decimal arithmetic and live in
the services.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import ValidationError

from sharedcart.app.errors import ErrorCode


def non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or whitespace-only.

    validate.Length(min=1) alone accepts "   ". This mirrors the DB
    CHECK(LENGTH(TRIM(...)) > 0) constraints.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _check_precision(value: Decimal) -> None:
    # Decimal("10.123").as_tuple().exponent == -3 -> 3 dp -> reject, never round.
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def positive_amount(value: Decimal) -> None:
    """Strictly positive, at most 2 decimal places. Used for bill totals."""
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    _check_precision(value)


def non_negative_amount(value: Decimal) -> None:
    """Zero or more, at most 2 decimal places. Used for item unit prices."""
    if value < Decimal("0"):
        raise ValidationError("Amount must not be negative.")
    _check_precision(value)


def unique_ids(error_code: str):
    """Builds a validator rejecting a list of ids that repeats an id."""
    def _validate(values: list[int]) -> None:
        if len(values) != len(set(values)):
            raise ValidationError(error_code)
    return _validate
