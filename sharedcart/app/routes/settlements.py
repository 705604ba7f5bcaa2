"""
routes/settlements.py — Settlement route handlers.

Parse, validate, call ONE service, commit, return envelope.

Endpoints (url_prefix=/api/v1/settlements):
  POST   /calculate                       → 200  preview, nothing stored
  POST   /                                → 201  store a pending settlement
  GET    /?group_id=&status=              → 200  list, newest first
  GET    /:id                             → 200  settlement + transactions
  POST   /:id/confirm                     → 200  pending → confirmed; bills settled
  POST   /:id/transactions/:tid/pay       → 200  mark one transfer paid

The preview body uses the literal field names group_id, bill_count,
total_amount, balances[] and transactions[].
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from sharedcart.app.extensions import db
from sharedcart.app.middleware.auth_middleware import require_auth
from sharedcart.app.models.settlement import Settlement, SettlementTransaction
from sharedcart.app.schemas.settlement_schema import (
    CalculateSettlementSchema,
    MarkTransactionPaidSchema,
    SettlementListQuerySchema,
)
from sharedcart.app.services import settlement_service

settlements_bp = Blueprint("settlements", __name__)


# ── Serialization helpers ──────────────────────────────────────────────────

def _iso(value):
    return value.isoformat() if value else None


def _serialize_transaction(tx: SettlementTransaction) -> dict:
    return {
        "id": tx.id,
        "from_user_id": tx.from_user_id,
        "from_user_name": tx.from_user.name if tx.from_user else None,
        "to_user_id": tx.to_user_id,
        "to_user_name": tx.to_user.name if tx.to_user else None,
        "amount": tx.amount,
        "status": tx.status.value,
        "paid_at": _iso(tx.paid_at),
        "notes": tx.notes,
    }


def _serialize_settlement(settlement: Settlement) -> dict:
    return {
        "id": settlement.id,
        "group_id": settlement.group_id,
        "title": settlement.title,
        "description": settlement.description,
        "created_by_id": settlement.created_by_id,
        "status": settlement.status.value,
        "settled_at": _iso(settlement.settled_at),
        "created_at": _iso(settlement.created_at),
        "bill_ids": settlement.bill_ids,
        "outstanding_amount": settlement_service.outstanding_amount(settlement),
        "transactions": [_serialize_transaction(t) for t in settlement.transactions],
    }


# ── Routes ─────────────────────────────────────────────────────────────────

@settlements_bp.route("/calculate", methods=["POST"])
@require_auth
def calculate_settlement():
    """POST /settlements/calculate — Read-only; safe to repeat."""
    data = CalculateSettlementSchema().load(request.get_json(force=True) or {})
    result = settlement_service.calculate_settlement(
        group_id=data["group_id"],
        caller_id=g.user_id,
        bill_ids=data["bill_ids"],
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@settlements_bp.route("/", methods=["POST"])
@require_auth
def create_settlement():
    """POST /settlements — Calculates and stores a pending settlement."""
    data = CalculateSettlementSchema().load(request.get_json(force=True) or {})
    settlement = settlement_service.create_settlement(
        group_id=data["group_id"],
        caller_id=g.user_id,
        bill_ids=data["bill_ids"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_settlement(settlement), "warnings": []}), 201


@settlements_bp.route("/", methods=["GET"])
@require_auth
def list_settlements():
    query = SettlementListQuerySchema().load(request.args.to_dict())
    settlements = settlement_service.list_settlements(
        group_id=query["group_id"],
        caller_id=g.user_id,
        status=query["status"],
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


@settlements_bp.route("/<int:settlement_id>", methods=["GET"])
@require_auth
def get_settlement(settlement_id: int):
    settlement = settlement_service.get_settlement(
        settlement_id=settlement_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": _serialize_settlement(settlement), "warnings": []}), 200


@settlements_bp.route("/<int:settlement_id>/confirm", methods=["POST"])
@require_auth
def confirm_settlement(settlement_id: int):
    """POST /settlements/:id/confirm — Creator or group admin; one-shot."""
    settlement = settlement_service.confirm_settlement(
        settlement_id=settlement_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_settlement(settlement), "warnings": []}), 200


@settlements_bp.route(
    "/<int:settlement_id>/transactions/<int:transaction_id>/pay",
    methods=["POST"],
)
@require_auth
def mark_transaction_paid(settlement_id: int, transaction_id: int):
    data = MarkTransactionPaidSchema().load(request.get_json(silent=True) or {})
    transaction = settlement_service.mark_transaction_paid(
        settlement_id=settlement_id,
        transaction_id=transaction_id,
        caller_id=g.user_id,
        notes=data["notes"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_transaction(transaction), "warnings": []}), 200
