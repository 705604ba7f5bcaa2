"""
routes/bills.py — Bill and bill-item route handlers.

Parse, validate, call ONE service, commit, return envelope.
_serialize_bill() and _serialize_item() are pure data-shape helpers.

Endpoints (url_prefix=/api/v1/bills):
  POST   /                          → 201  create bill with items
  GET    /?group_id=&status=        → 200  list active bills of a group
  GET    /:id                       → 200  bill + items
  PATCH  /:id                       → 200  title/description/bill_date
  DELETE /:id                       → 200  soft-delete (pending only)
  POST   /:id/finalize              → 200  pending → finalized
  POST   /:id/items                 → 201  add item
  PUT    /:id/items/:item_id        → 200  replace item
  DELETE /:id/items/:item_id        → 200  remove item
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from sharedcart.app.extensions import db
from sharedcart.app.middleware.auth_middleware import require_auth
from sharedcart.app.models.bill import Bill, BillItem
from sharedcart.app.schemas.bill_schema import (
    BillItemInputSchema,
    BillListQuerySchema,
    CreateBillSchema,
    UpdateBillSchema,
)
from sharedcart.app.services import bill_service

bills_bp = Blueprint("bills", __name__)


# ── Serialization helpers ──────────────────────────────────────────────────
# Decimal values are rendered as strings by DecimalJSONProvider.

def _iso(value):
    return value.isoformat() if value else None


def _serialize_item(item: BillItem) -> dict:
    return {
        "id": item.id,
        "bill_id": item.bill_id,
        "name": item.name,
        "description": item.description,
        "amount": item.amount,
        "quantity": item.quantity,
        "line_total": item.amount * item.quantity,
        "is_shared": item.is_shared,
        "owner_ids": item.owner_ids,
    }


def _serialize_bill(bill: Bill) -> dict:
    return {
        "id": bill.id,
        "group_id": bill.group_id,
        "title": bill.title,
        "description": bill.description,
        "total_amount": bill.total_amount,
        "paid_by_id": bill.paid_by_id,
        "paid_by_name": bill.payer.name if bill.payer else None,
        "bill_date": _iso(bill.bill_date),
        "status": bill.status.value,
        "created_at": _iso(bill.created_at),
        "updated_at": _iso(bill.updated_at),
        "items": [_serialize_item(i) for i in bill.items],
    }


# ── Bill routes ────────────────────────────────────────────────────────────

@bills_bp.route("/", methods=["POST"])
@require_auth
def create_bill():
    """POST /bills — Total must match the items; payer defaults to the caller."""
    data = CreateBillSchema().load(request.get_json(force=True) or {})
    bill = bill_service.create_bill(
        group_id=data["group_id"],
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_bill(bill), "warnings": []}), 201


@bills_bp.route("/", methods=["GET"])
@require_auth
def list_bills():
    query = BillListQuerySchema().load(request.args.to_dict())
    bills = bill_service.list_bills(
        group_id=query["group_id"],
        caller_id=g.user_id,
        status=query["status"],
        session=db.session,
    )
    return jsonify({"data": [_serialize_bill(b) for b in bills], "warnings": []}), 200


@bills_bp.route("/<int:bill_id>", methods=["GET"])
@require_auth
def get_bill(bill_id: int):
    bill = bill_service.get_bill(
        bill_id=bill_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": _serialize_bill(bill), "warnings": []}), 200


@bills_bp.route("/<int:bill_id>", methods=["PATCH"])
@require_auth
def update_bill(bill_id: int):
    data = UpdateBillSchema().load(request.get_json(force=True) or {})
    bill = bill_service.update_bill(
        bill_id=bill_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_bill(bill), "warnings": []}), 200


@bills_bp.route("/<int:bill_id>", methods=["DELETE"])
@require_auth
def delete_bill(bill_id: int):
    """DELETE /bills/:id — Sets deleted_at; the row stays for audit."""
    bill_service.delete_bill(
        bill_id=bill_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"deleted": True, "bill_id": bill_id}, "warnings": []}), 200


@bills_bp.route("/<int:bill_id>/finalize", methods=["POST"])
@require_auth
def finalize_bill(bill_id: int):
    bill = bill_service.finalize_bill(
        bill_id=bill_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_bill(bill), "warnings": []}), 200


# ── Item routes ────────────────────────────────────────────────────────────

@bills_bp.route("/<int:bill_id>/items", methods=["POST"])
@require_auth
def add_item(bill_id: int):
    data = BillItemInputSchema().load(request.get_json(force=True) or {})
    item = bill_service.add_item(
        bill_id=bill_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_item(item), "warnings": []}), 201


@bills_bp.route("/<int:bill_id>/items/<int:item_id>", methods=["PUT"])
@require_auth
def update_item(bill_id: int, item_id: int):
    data = BillItemInputSchema().load(request.get_json(force=True) or {})
    item = bill_service.update_item(
        bill_id=bill_id,
        item_id=item_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_item(item), "warnings": []}), 200


@bills_bp.route("/<int:bill_id>/items/<int:item_id>", methods=["DELETE"])
@require_auth
def delete_item(bill_id: int, item_id: int):
    bill = bill_service.delete_item(
        bill_id=bill_id,
        item_id=item_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_bill(bill), "warnings": []}), 200
