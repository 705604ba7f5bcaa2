"""
schemas/settlement_schema.py — Marshmallow schemas for settlement endpoints.

Validation responsibility:
  - This file: field types, id lists, status values.
  - services/settlement_service.py: EMPTY_BILL_SELECTION (after duplicate
    ids collapse), BILL_NOT_FOUND, BILL_ALREADY_SETTLED, permissions and
    every state transition.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from sharedcart.app.models.enums import SettlementStatus


class CalculateSettlementSchema(Schema):
    """
    POST /settlements/calculate and POST /settlements

    Duplicate bill ids are accepted and collapse to one; the service sorts
    them so the result never depends on request order.
    """

    group_id = fields.Int(required=True, strict=True, validate=validate.Range(min=1))

    bill_ids = fields.List(
        fields.Int(strict=True, validate=validate.Range(min=1)),
        required=True,
        validate=validate.Length(min=1, error="Select at least one bill."),
    )


class SettlementListQuerySchema(Schema):
    """GET /settlements?group_id=&status="""

    group_id = fields.Int(required=True, validate=validate.Range(min=1))

    status = fields.Enum(SettlementStatus, by_value=True, load_default=None)


class MarkTransactionPaidSchema(Schema):
    """POST /settlements/:id/transactions/:tid/pay"""

    notes = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=500))
