"""
services/bill_service.py — Bill and bill-item business logic.

Rules enforced here:
  - PAYER_NOT_MEMBER (422)      the payer must be a group member
  - OWNER_NOT_MEMBER (422)      every item owner must be a group member
  - ITEM_OWNERS_REQUIRED (422)  a non-shared item must name at least one owner
  - BILL_TOTAL_MISMATCH (422)   total_amount == sum(amount * quantity) within
                                the dust tolerance, checked at creation
  - BILL_NOT_PENDING (409)      only pending bills may be edited, deleted,
                                given items or finalized
  - BILL_HAS_NO_ITEMS (409)     finalize needs at least one item
  - FORBIDDEN (403)             reading needs membership; mutating needs the
                                payer or a group admin

Item mutations keep total_amount consistent by applying the line-total delta
of the change, never by re-reading all items.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Returns ORM objects or raises AppError.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from sharedcart.app.errors import AppError, ErrorCode, ErrorKind
from sharedcart.app.models.bill import Bill, BillItem, ItemOwner
from sharedcart.app.models.enums import BillStatus
from sharedcart.app.money import ZERO, amounts_equal, line_total
from sharedcart.app.services import group_service

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _get_bill_or_404(bill_id: int, session: Session) -> Bill:
    """Returns the active Bill or raises BILL_NOT_FOUND. Soft-deleted bills are invisible."""
    bill = session.get(Bill, bill_id)
    if bill is None or bill.deleted_at is not None:
        raise AppError(
            ErrorCode.BILL_NOT_FOUND,
            f"Bill {bill_id} does not exist.",
            ErrorKind.NOT_FOUND,
        )
    return bill


def _get_item_or_404(bill: Bill, item_id: int, session: Session) -> BillItem:
    item = session.get(BillItem, item_id)
    if item is None or item.bill_id != bill.id:
        raise AppError(
            ErrorCode.ITEM_NOT_FOUND,
            f"Item {item_id} does not exist on bill {bill.id}.",
            ErrorKind.NOT_FOUND,
        )
    return item


def _require_pending(bill: Bill, action: str) -> None:
    if bill.status != BillStatus.PENDING:
        raise AppError(
            ErrorCode.BILL_NOT_PENDING,
            f"Cannot {action}: bill {bill.id} is {bill.status.value}.",
            ErrorKind.STATE_CONFLICT,
        )


def _require_bill_editor(bill: Bill, caller_id: int, session: Session, action: str) -> None:
    """The payer or a group admin may mutate a bill; anyone else gets FORBIDDEN."""
    group_service.require_member(bill.group_id, caller_id, session)
    if bill.paid_by_id != caller_id and not group_service.is_admin(bill.group_id, caller_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only the bill's payer or a group admin can {action}.",
            ErrorKind.AUTHORIZATION,
        )


def _get_mutable_bill(bill_id: int, caller_id: int, session: Session, action: str) -> Bill:
    bill = _get_bill_or_404(bill_id, session)
    _require_bill_editor(bill, caller_id, session, action)
    _require_pending(bill, action)
    return bill


def _member_ids(group_id: int, session: Session) -> set[int]:
    return {user.id for user in group_service.list_members(group_id, session)}


def _validate_item_owners(item_data: dict, group_id: int, member_ids: set[int]) -> list[int]:
    """
    Returns the owner ids to store for an item (none for shared items).

    Raises ITEM_OWNERS_REQUIRED or OWNER_NOT_MEMBER (422).
    """
    if item_data.get("is_shared", False):
        return []

    owner_ids = list(item_data.get("owner_ids") or [])
    if not owner_ids:
        raise AppError(
            ErrorCode.ITEM_OWNERS_REQUIRED,
            f"Item {item_data['name']!r} is not shared, so it needs at least one owner.",
            ErrorKind.VALIDATION,
            field="owner_ids",
        )

    for owner_id in owner_ids:
        if owner_id not in member_ids:
            raise AppError(
                ErrorCode.OWNER_NOT_MEMBER,
                f"User {owner_id} is not a member of group {group_id}.",
                ErrorKind.VALIDATION,
                field="owner_ids",
            )
    return owner_ids


def _build_item(item_data: dict, owner_ids: list[int]) -> BillItem:
    item = BillItem(
        name=item_data["name"],
        description=item_data.get("description"),
        amount=item_data["amount"],
        quantity=item_data.get("quantity") or 1,
        is_shared=item_data.get("is_shared", False),
    )
    item.owners = [ItemOwner(user_id=uid, share_ratio=Decimal("1.00")) for uid in owner_ids]
    return item


def _sync_owners(item: BillItem, owner_ids: list[int]) -> None:
    """
    Brings item.owners in line with owner_ids by diff.

    Rows for owners that stay are kept as they are; only dropped owners are
    removed and only new ids are inserted (uq_item_owners_item_user).
    """
    wanted = set(owner_ids)
    for owner in list(item.owners):
        if owner.user_id not in wanted:
            item.owners.remove(owner)

    existing = {owner.user_id for owner in item.owners}
    for uid in owner_ids:
        if uid not in existing:
            item.owners.append(ItemOwner(user_id=uid, share_ratio=Decimal("1.00")))


def _item_line_total(item_data: dict) -> Decimal:
    return line_total(item_data["amount"], item_data.get("quantity") or 1)


# ── Public service functions ───────────────────────────────────────────────

def create_bill(group_id: int, caller_id: int, data: dict, session: Session) -> Bill:
    """
    Creates a pending bill with its items and item owners.

    Args:
        caller_id: The authenticated user (flask.g.user_id). Becomes the payer
                   unless the payload names another member in paid_by_id.
        data:      Validated dict from CreateBillSchema.

    Raises:
        AppError(GROUP_NOT_FOUND), AppError(FORBIDDEN),
        AppError(PAYER_NOT_MEMBER), AppError(OWNER_NOT_MEMBER),
        AppError(ITEM_OWNERS_REQUIRED), AppError(BILL_TOTAL_MISMATCH)
    """
    group_service.get_group_or_404(group_id, session)
    group_service.require_member(group_id, caller_id, session)

    member_ids = _member_ids(group_id, session)
    paid_by_id = data.get("paid_by_id") or caller_id
    if paid_by_id not in member_ids:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {paid_by_id} is not a member of group {group_id}.",
            ErrorKind.VALIDATION,
            field="paid_by_id",
        )

    items: list[BillItem] = []
    items_total = ZERO
    for item_data in data.get("items", []):
        owner_ids = _validate_item_owners(item_data, group_id, member_ids)
        items.append(_build_item(item_data, owner_ids))
        items_total += _item_line_total(item_data)

    total_amount: Decimal = data["total_amount"]
    if not amounts_equal(total_amount, items_total):
        raise AppError(
            ErrorCode.BILL_TOTAL_MISMATCH,
            f"Total amount ({total_amount}) does not match the sum of items ({items_total}).",
            ErrorKind.VALIDATION,
            field="total_amount",
        )

    bill = Bill(
        group_id=group_id,
        title=data["title"],
        description=data.get("description"),
        total_amount=total_amount,
        paid_by_id=paid_by_id,
        bill_date=data.get("bill_date") or _now(),
        status=BillStatus.PENDING,
    )
    bill.items = items
    session.add(bill)
    session.flush()

    logger.info("Bill %s created in group %s with %d items", bill.id, group_id, len(items))
    return bill


def list_bills(
        group_id: int,
        caller_id: int,
        session: Session,
        status: BillStatus | None = None,
) -> list[Bill]:
    """Active bills of a group, newest bill_date first, optionally filtered by status."""
    group_service.get_group_or_404(group_id, session)
    group_service.require_member(group_id, caller_id, session)

    stmt = select(Bill).where(
        Bill.group_id == group_id,
        Bill.deleted_at.is_(None),
    )
    if status is not None:
        stmt = stmt.where(Bill.status == status)
    stmt = stmt.order_by(Bill.bill_date.desc(), Bill.id.desc())

    return list(session.execute(stmt).scalars().all())


def get_bill(bill_id: int, caller_id: int, session: Session) -> Bill:
    bill = _get_bill_or_404(bill_id, session)
    group_service.require_member(bill.group_id, caller_id, session)
    return bill


def update_bill(bill_id: int, caller_id: int, data: dict, session: Session) -> Bill:
    """
    Partial update of title, description and bill_date.

    total_amount is not editable here; it follows the items.
    """
    bill = _get_mutable_bill(bill_id, caller_id, session, "update the bill")

    for field in ("title", "description", "bill_date"):
        if field in data:
            setattr(bill, field, data[field])
    bill.updated_at = _now()
    session.flush()

    return bill


def delete_bill(bill_id: int, caller_id: int, session: Session) -> None:
    """Soft-deletes a pending bill (sets deleted_at). The row stays for audit."""
    bill = _get_mutable_bill(bill_id, caller_id, session, "delete the bill")

    bill.deleted_at = _now()
    session.flush()
    logger.info("Bill %s deleted by user %s", bill_id, caller_id)


def add_item(bill_id: int, caller_id: int, data: dict, session: Session) -> BillItem:
    """Adds an item and raises the bill total by its line total."""
    bill = _get_mutable_bill(bill_id, caller_id, session, "add items")

    owner_ids = _validate_item_owners(data, bill.group_id, _member_ids(bill.group_id, session))
    item = _build_item(data, owner_ids)
    bill.items.append(item)

    bill.total_amount = bill.total_amount + _item_line_total(data)
    bill.updated_at = _now()
    session.flush()

    return item


def update_item(
        bill_id: int,
        item_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> BillItem:
    """
    Replaces an item's fields and owners, and adjusts the bill total by the
    difference between the new and old line totals.
    """
    bill = _get_mutable_bill(bill_id, caller_id, session, "update items")
    item = _get_item_or_404(bill, item_id, session)

    owner_ids = _validate_item_owners(data, bill.group_id, _member_ids(bill.group_id, session))
    old_total = line_total(item.amount, item.quantity)
    new_total = _item_line_total(data)

    item.name = data["name"]
    item.description = data.get("description")
    item.amount = data["amount"]
    item.quantity = data.get("quantity") or 1
    item.is_shared = data.get("is_shared", False)
    _sync_owners(item, owner_ids)
    item.updated_at = _now()

    bill.total_amount = bill.total_amount + (new_total - old_total)
    bill.updated_at = _now()
    session.flush()

    return item


def delete_item(bill_id: int, item_id: int, caller_id: int, session: Session) -> Bill:
    """Removes an item (and its owners) and lowers the bill total by its line total."""
    bill = _get_mutable_bill(bill_id, caller_id, session, "delete items")
    item = _get_item_or_404(bill, item_id, session)

    bill.total_amount = bill.total_amount - line_total(item.amount, item.quantity)
    bill.items.remove(item)
    bill.updated_at = _now()
    session.flush()

    return bill


def finalize_bill(bill_id: int, caller_id: int, session: Session) -> Bill:
    """pending -> finalized. Requires at least one item."""
    bill = _get_mutable_bill(bill_id, caller_id, session, "finalize the bill")

    if not bill.items:
        raise AppError(
            ErrorCode.BILL_HAS_NO_ITEMS,
            f"Bill {bill_id} has no items and cannot be finalized.",
            ErrorKind.STATE_CONFLICT,
        )

    bill.status = BillStatus.FINALIZED
    bill.updated_at = _now()
    session.flush()

    logger.info("Bill %s finalized by user %s", bill_id, caller_id)
    return bill
