"""
services/split_service.py — Bill Split Resolver.

Turns one bill's items into the two quantities the balance aggregator needs:

  shared_total     sum of line totals of items flagged is_shared. The
                   aggregator divides it across the whole group roster.
  personal_totals  {user_id: amount} for non-shared items. Each item's line
                   total is divided evenly across its owners.

Layer rules:
  - No Flask imports, no session, no authorisation. Pure computation.
  - Works on any object exposing the Bill / BillItem attributes it reads
    (id, items / amount, quantity, is_shared, owner_ids), so unit tests pass
    SimpleNamespace rows instead of ORM instances.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from sharedcart.app.errors import AppError, ErrorCode, ErrorKind
from sharedcart.app.money import ZERO, divide_evenly, line_total, to_money

logger = logging.getLogger(__name__)


def validate_item(item) -> None:
    """
    Rejects an item whose amount is negative or whose quantity is below 1.

    Raises:
        AppError(INVALID_ITEM, validation)
    """
    amount = to_money(item.amount)
    if amount < 0:
        raise AppError(
            ErrorCode.INVALID_ITEM,
            f"Item amount must not be negative (got {amount}).",
            ErrorKind.VALIDATION,
            field="amount",
        )
    if item.quantity is None or item.quantity < 1:
        raise AppError(
            ErrorCode.INVALID_ITEM,
            f"Item quantity must be at least 1 (got {item.quantity}).",
            ErrorKind.VALIDATION,
            field="quantity",
        )


def resolve_contributions(bill) -> tuple[Decimal, dict[int, Decimal]]:
    """
    Splits a bill's items into a shared total and per-owner personal totals.

    A non-shared item with no owners contributes to nobody. It is logged and
    skipped, never raised, so historic bills with orphaned items still settle.

    Returns:
        (shared_total, personal_totals). personal_totals only contains users
        that own at least one non-shared item; values carry share precision.
    """
    shared_total = ZERO
    personal_totals: dict[int, Decimal] = defaultdict(lambda: ZERO)

    for item in bill.items:
        validate_item(item)
        total = line_total(item.amount, item.quantity)

        if item.is_shared:
            shared_total += total
            continue

        owner_ids = list(item.owner_ids)
        if not owner_ids:
            logger.warning(
                "Bill %s item %s is not shared and has no owners; "
                "its line total %s is excluded from every member's owes.",
                bill.id, getattr(item, "id", None), total,
            )
            continue

        share = divide_evenly(total, len(owner_ids))
        for owner_id in owner_ids:
            personal_totals[owner_id] += share

    return shared_total, dict(personal_totals)
