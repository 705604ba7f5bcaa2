"""
services/settlement_service.py — Settlement lifecycle.

Operations:
  calculate_settlement   read-only preview: balances + minimal transfers for a
                         set of bills
  create_settlement      persists a pending Settlement with its bill links and
                         pending transactions; bill statuses are unchanged
  confirm_settlement     pending -> confirmed exactly once; every linked bill
                         becomes settled in the same database transaction
  mark_transaction_paid  pending -> paid for one transfer of a confirmed
                         settlement
  get_settlement / list_settlements

Concurrency:
  confirm_settlement loads the row FOR UPDATE and flips the status with a
  conditional UPDATE ... WHERE status = 'pending'. If two confirms race, the
  loser sees a zero row count and gets SETTLEMENT_NOT_PENDING; the bills are
  only touched by the winner. Several pending settlements may cover the same
  bill; the linked bills are locked and re-checked on confirm, so only the
  first confirm settles them and later ones get BILL_ALREADY_SETTLED.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here. A
    SQLAlchemyError in a multi-step write rolls the session back and is
    re-raised as INTERNAL_ERROR.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sharedcart.app.errors import AppError, ErrorCode, ErrorKind
from sharedcart.app.models.bill import Bill
from sharedcart.app.models.enums import BillStatus, SettlementStatus, TransactionStatus
from sharedcart.app.models.settlement import Settlement, SettlementBill, SettlementTransaction
from sharedcart.app.money import DUST_TOLERANCE, ZERO, to_money
from sharedcart.app.services import balance_service, group_service

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _normalise_bill_ids(bill_ids) -> list[int]:
    """Collapses duplicates and sorts. An empty selection is a validation error."""
    unique_ids = sorted(set(bill_ids or []))
    if not unique_ids:
        raise AppError(
            ErrorCode.EMPTY_BILL_SELECTION,
            "At least one bill must be selected.",
            ErrorKind.VALIDATION,
            field="bill_ids",
        )
    return unique_ids


def _load_bills(group_id: int, bill_ids: list[int], session: Session) -> list[Bill]:
    """
    Returns the active bills of `group_id` named in `bill_ids`, ordered by id.

    Raises BILL_NOT_FOUND for the first id that is missing, soft-deleted or
    belongs to a different group.
    """
    stmt = (
        select(Bill)
        .where(
            Bill.id.in_(bill_ids),
            Bill.group_id == group_id,
            Bill.deleted_at.is_(None),
        )
        .order_by(Bill.id.asc())
    )
    bills = list(session.execute(stmt).scalars().all())

    found = {bill.id for bill in bills}
    for bill_id in bill_ids:
        if bill_id not in found:
            raise AppError(
                ErrorCode.BILL_NOT_FOUND,
                f"Bill {bill_id} does not exist in group {group_id}.",
                ErrorKind.NOT_FOUND,
                field="bill_ids",
            )
    return bills


def _get_settlement_or_404(
        settlement_id: int,
        session: Session,
        for_update: bool = False,
) -> Settlement:
    stmt = select(Settlement).where(Settlement.id == settlement_id)
    if for_update:
        stmt = stmt.with_for_update()
    settlement = session.execute(stmt).scalar_one_or_none()
    if settlement is None:
        raise AppError(
            ErrorCode.SETTLEMENT_NOT_FOUND,
            f"Settlement {settlement_id} does not exist.",
            ErrorKind.NOT_FOUND,
        )
    return settlement


def _require_creator_or_admin(settlement: Settlement, caller_id: int, session: Session) -> None:
    group_service.require_member(settlement.group_id, caller_id, session)
    if settlement.created_by_id != caller_id and not group_service.is_admin(
            settlement.group_id, caller_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the settlement's creator or a group admin can confirm it.",
            ErrorKind.AUTHORIZATION,
        )


def _mark_confirmed(settlement_id: int, settled_at: datetime, session: Session) -> bool:
    """Conditional pending -> confirmed flip. False when another writer got there first."""
    result = session.execute(
        update(Settlement)
        .where(
            Settlement.id == settlement_id,
            Settlement.status == SettlementStatus.PENDING,
        )
        .values(
            status=SettlementStatus.CONFIRMED,
            settled_at=settled_at,
            updated_at=settled_at,
        )
    )
    return result.rowcount == 1


def _require_linked_bills_unsettled(settlement_id: int, session: Session) -> None:
    """
    Locks the settlement's bills and raises BILL_ALREADY_SETTLED if another
    settlement has already settled any of them.
    """
    linked = session.execute(
        select(Bill.id, Bill.status)
        .join(SettlementBill, SettlementBill.bill_id == Bill.id)
        .where(SettlementBill.settlement_id == settlement_id)
        .order_by(Bill.id.asc())
        .with_for_update(of=Bill)
    ).all()

    settled_ids = [bill_id for bill_id, status in linked if status == BillStatus.SETTLED]
    if settled_ids:
        raise AppError(
            ErrorCode.BILL_ALREADY_SETTLED,
            f"Bills {settled_ids} have already been settled by another settlement.",
            ErrorKind.STATE_CONFLICT,
            field="bill_ids",
        )


def _settle_linked_bills(settlement_id: int, settled_at: datetime, session: Session) -> list[int]:
    """Sets every bill linked to the settlement to settled. Returns their ids."""
    bill_ids = list(session.execute(
        select(SettlementBill.bill_id)
        .where(SettlementBill.settlement_id == settlement_id)
        .order_by(SettlementBill.bill_id.asc())
    ).scalars().all())

    if bill_ids:
        session.execute(
            update(Bill)
            .where(Bill.id.in_(bill_ids))
            .values(status=BillStatus.SETTLED, updated_at=settled_at)
        )
    return bill_ids


def _rollback_and_raise(session: Session, exc: SQLAlchemyError, action: str) -> None:
    session.rollback()
    logger.error("Rolled back while trying to %s: %s", action, exc)
    raise AppError(
        ErrorCode.INTERNAL_ERROR,
        f"Could not {action}. No changes were saved.",
        ErrorKind.INTERNAL,
    ) from exc


# ── Public service functions ───────────────────────────────────────────────

def calculate_settlement(
        group_id: int,
        caller_id: int,
        bill_ids,
        session: Session,
) -> dict:
    """
    Computes balances and the minimal set of transfers for the given bills.

    Read-only: nothing is written and repeated calls over unchanged data
    return identical results.

    Returns:
        {
          "group_id": int,
          "bill_count": int,
          "total_amount": Decimal,
          "balances": [{"user_id", "user_name", "paid", "owes", "balance"}],
          "transactions": [{"from_user_id", "from_user_name",
                            "to_user_id", "to_user_name", "amount"}],
        }
        Balances are ordered by user_id.

    Raises:
        AppError(GROUP_NOT_FOUND), AppError(FORBIDDEN),
        AppError(EMPTY_BILL_SELECTION), AppError(BILL_NOT_FOUND)
    """
    group_service.get_group_or_404(group_id, session)
    group_service.require_member(group_id, caller_id, session)

    unique_ids = _normalise_bill_ids(bill_ids)
    bills = _load_bills(group_id, unique_ids, session)
    members = group_service.list_members(group_id, session)

    balances = balance_service.aggregate_balances(bills, members)
    transactions = balance_service.minimize_transactions(balances)

    drift = balance_service.balance_sum(balances)
    if abs(drift) > DUST_TOLERANCE * max(len(members), 1):
        logger.warning(
            "Balances for group %s over bills %s sum to %s, not zero; "
            "a payer or owner has probably left the group.",
            group_id, unique_ids, drift,
        )

    return {
        "group_id": group_id,
        "bill_count": len(bills),
        "total_amount": sum((to_money(b.total_amount) for b in bills), ZERO),
        "balances": [balances[uid] for uid in sorted(balances)],
        "transactions": transactions,
    }


def create_settlement(
        group_id: int,
        caller_id: int,
        bill_ids,
        session: Session,
        result: dict | None = None,
) -> Settlement:
    """
    Persists a calculated settlement as pending.

    Args:
        result: The dict returned by calculate_settlement() for the same
                bills. Calculated here when omitted.

    Raises:
        AppError(BILL_ALREADY_SETTLED) if any bill has already been settled.
        AppError(INTERNAL_ERROR) if the write fails; the session is rolled back.
    """
    group_service.get_group_or_404(group_id, session)
    group_service.require_member(group_id, caller_id, session)

    unique_ids = _normalise_bill_ids(bill_ids)
    bills = _load_bills(group_id, unique_ids, session)
    for bill in bills:
        if bill.status == BillStatus.SETTLED:
            raise AppError(
                ErrorCode.BILL_ALREADY_SETTLED,
                f"Bill {bill.id} has already been settled.",
                ErrorKind.STATE_CONFLICT,
                field="bill_ids",
            )

    if result is None:
        result = calculate_settlement(group_id, caller_id, unique_ids, session)

    settlement = Settlement(
        group_id=group_id,
        title=f"Settlement for {len(unique_ids)} bills",
        description=f"Total amount: {result['total_amount']}",
        created_by_id=caller_id,
        status=SettlementStatus.PENDING,
    )
    settlement.bill_links = [SettlementBill(bill_id=bill_id) for bill_id in unique_ids]
    settlement.transactions = [
        SettlementTransaction(
            from_user_id=t["from_user_id"],
            to_user_id=t["to_user_id"],
            amount=t["amount"],
            status=TransactionStatus.PENDING,
        )
        for t in result["transactions"]
    ]

    try:
        session.add(settlement)
        session.flush()
    except SQLAlchemyError as exc:
        _rollback_and_raise(session, exc, "create the settlement")

    logger.info(
        "Settlement %s created in group %s for bills %s with %d transactions",
        settlement.id, group_id, unique_ids, len(settlement.transactions),
    )
    return settlement


def confirm_settlement(settlement_id: int, caller_id: int, session: Session) -> Settlement:
    """
    pending -> confirmed, stamping settled_at and settling every linked bill.

    Raises:
        AppError(SETTLEMENT_NOT_FOUND), AppError(FORBIDDEN),
        AppError(SETTLEMENT_NOT_PENDING) — already confirmed, or a concurrent
                                           confirm won the race
        AppError(BILL_ALREADY_SETTLED)   — a linked bill was settled by another
                                           settlement since this one was created
        AppError(INTERNAL_ERROR)         — the write failed and was rolled back
    """
    settlement = _get_settlement_or_404(settlement_id, session, for_update=True)
    _require_creator_or_admin(settlement, caller_id, session)

    if settlement.status != SettlementStatus.PENDING:
        raise AppError(
            ErrorCode.SETTLEMENT_NOT_PENDING,
            f"Settlement {settlement_id} is {settlement.status.value}, not pending.",
            ErrorKind.STATE_CONFLICT,
        )

    _require_linked_bills_unsettled(settlement_id, session)

    settled_at = _now()
    try:
        if not _mark_confirmed(settlement_id, settled_at, session):
            raise AppError(
                ErrorCode.SETTLEMENT_NOT_PENDING,
                f"Settlement {settlement_id} was confirmed by another request.",
                ErrorKind.STATE_CONFLICT,
            )
        bill_ids = _settle_linked_bills(settlement_id, settled_at, session)
        session.flush()
    except SQLAlchemyError as exc:
        _rollback_and_raise(session, exc, "confirm the settlement")

    logger.info(
        "Settlement %s confirmed by user %s; bills %s settled",
        settlement_id, caller_id, bill_ids,
    )
    return settlement


def get_settlement(settlement_id: int, caller_id: int, session: Session) -> Settlement:
    settlement = _get_settlement_or_404(settlement_id, session)
    group_service.require_member(settlement.group_id, caller_id, session)
    return settlement


def list_settlements(
        group_id: int,
        caller_id: int,
        session: Session,
        status: SettlementStatus | None = None,
) -> list[Settlement]:
    """Returns a group's settlements, newest first, optionally filtered by status."""
    group_service.get_group_or_404(group_id, session)
    group_service.require_member(group_id, caller_id, session)

    stmt = select(Settlement).where(Settlement.group_id == group_id)
    if status is not None:
        stmt = stmt.where(Settlement.status == status)
    stmt = stmt.order_by(Settlement.created_at.desc(), Settlement.id.desc())

    return list(session.execute(stmt).scalars().all())


def mark_transaction_paid(
        settlement_id: int,
        transaction_id: int,
        caller_id: int,
        session: Session,
        notes: str | None = None,
) -> SettlementTransaction:
    """
    Records that one transfer of a confirmed settlement has been paid.

    Allowed for the payer, the recipient, or a group admin.

    Raises:
        AppError(SETTLEMENT_NOT_FOUND), AppError(TRANSACTION_NOT_FOUND),
        AppError(FORBIDDEN), AppError(SETTLEMENT_NOT_CONFIRMED),
        AppError(TRANSACTION_ALREADY_PAID)
    """
    settlement = _get_settlement_or_404(settlement_id, session)
    group_service.require_member(settlement.group_id, caller_id, session)

    transaction = session.get(SettlementTransaction, transaction_id)
    if transaction is None or transaction.settlement_id != settlement_id:
        raise AppError(
            ErrorCode.TRANSACTION_NOT_FOUND,
            f"Transaction {transaction_id} does not belong to settlement {settlement_id}.",
            ErrorKind.NOT_FOUND,
        )

    if caller_id not in (transaction.from_user_id, transaction.to_user_id) and \
            not group_service.is_admin(settlement.group_id, caller_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the payer, the recipient or a group admin can mark a transfer as paid.",
            ErrorKind.AUTHORIZATION,
        )

    if settlement.status != SettlementStatus.CONFIRMED:
        raise AppError(
            ErrorCode.SETTLEMENT_NOT_CONFIRMED,
            f"Settlement {settlement_id} must be confirmed before transfers are paid.",
            ErrorKind.STATE_CONFLICT,
        )

    if transaction.status == TransactionStatus.PAID:
        raise AppError(
            ErrorCode.TRANSACTION_ALREADY_PAID,
            f"Transaction {transaction_id} is already paid.",
            ErrorKind.STATE_CONFLICT,
        )

    transaction.status = TransactionStatus.PAID
    transaction.paid_at = _now()
    if notes is not None:
        transaction.notes = notes
    session.flush()

    return transaction


def outstanding_amount(settlement: Settlement) -> Decimal:
    """Sum of the settlement's transfers that are still pending."""
    return sum(
        (to_money(t.amount) for t in settlement.transactions if t.status == TransactionStatus.PENDING),
        ZERO,
    )
