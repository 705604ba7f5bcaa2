"""
schemas/bill_schema.py — Marshmallow schemas for bill and bill-item endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, decimal precision (INVALID_AMOUNT_PRECISION)
      - amount >= 0 per item, quantity >= 1, bill total > 0
      - DUPLICATE_ITEM_OWNER — the same owner id listed twice on one item
  - services/bill_service.py:
      - BILL_TOTAL_MISMATCH  — needs Decimal arithmetic over all items
      - ITEM_OWNERS_REQUIRED — reported with the item's name
      - PAYER_NOT_MEMBER / OWNER_NOT_MEMBER — need a membership lookup
      - BILL_NOT_PENDING, FORBIDDEN — need the stored bill

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from datetime import timezone

from marshmallow import Schema, fields, validate

from sharedcart.app.errors import ErrorCode
from sharedcart.app.models.enums import BillStatus
from sharedcart.app.schemas.validators import (
    non_empty_after_trim,
    non_negative_amount,
    positive_amount,
    unique_ids,
)


def _title_field(**kwargs) -> fields.Str:
    return fields.Str(
        validate=[
            validate.Length(min=2, max=100, error="Title must be between 2 and 100 characters."),
            non_empty_after_trim,
        ],
        **kwargs,
    )


class BillItemInputSchema(Schema):
    """
    One item, used both nested in CreateBillSchema and on its own for
    POST /bills/:id/items and PUT /bills/:id/items/:item_id.

    owner_ids is ignored for shared items.
    """

    name = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=200), non_empty_after_trim],
    )

    description = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=500))

    # Unit price; the line total is amount * quantity.
    amount = fields.Decimal(required=True, validate=non_negative_amount)

    quantity = fields.Int(
        load_default=1,
        strict=True,
        validate=validate.Range(min=1, error="Quantity must be at least 1."),
    )

    is_shared = fields.Bool(load_default=False)

    owner_ids = fields.List(
        fields.Int(strict=True, validate=validate.Range(min=1)),
        load_default=list,
        validate=unique_ids(ErrorCode.DUPLICATE_ITEM_OWNER),
    )


class CreateBillSchema(Schema):
    """
    POST /bills

    paid_by_id defaults to the caller (filled in by the service).
    """

    group_id = fields.Int(required=True, strict=True, validate=validate.Range(min=1))

    title = _title_field(required=True)

    description = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=500))

    total_amount = fields.Decimal(required=True, validate=positive_amount)

    paid_by_id = fields.Int(load_default=None, strict=True, validate=validate.Range(min=1))

    bill_date = fields.AwareDateTime(load_default=None, default_timezone=timezone.utc)

    items = fields.List(fields.Nested(BillItemInputSchema), load_default=list)


class UpdateBillSchema(Schema):
    """PATCH /bills/:id — title, description and bill_date only."""

    title = _title_field()

    description = fields.Str(allow_none=True, validate=validate.Length(max=500))

    bill_date = fields.AwareDateTime(default_timezone=timezone.utc)


class BillListQuerySchema(Schema):
    """GET /bills?group_id=&status="""

    group_id = fields.Int(required=True, validate=validate.Range(min=1))

    status = fields.Enum(BillStatus, by_value=True, load_default=None)
