"""
services/balance_service.py — Balance aggregation and debt minimisation.

This file is the SINGLE SOURCE OF TRUTH for how balances are computed.
The formula must not be reimplemented elsewhere in the codebase.

Layer rules:
  - No Flask imports. No session. No HTTP knowledge.
  - Receives already-loaded bills and members; returns plain dicts and lists.
  - Fully unit-testable with SimpleNamespace rows.

Zero-sum guarantee:
  - When every payer and owner is on the roster, the members' balances sum
    to zero within DUST_TOLERANCE. Shares are kept at 8 fractional digits,
    so the result does not depend on bill or item order.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sharedcart.app.money import (
    DUST_TOLERANCE,
    ZERO,
    divide_evenly,
    is_dust,
    quantize_money,
    to_money,
)
from sharedcart.app.services.split_service import resolve_contributions

logger = logging.getLogger(__name__)


# ── Balance Aggregator ─────────────────────────────────────────────────────

def aggregate_balances(bills, members) -> dict[int, dict]:
    """
    Computes one balance per roster member across the given bills.

    Algorithm:
      1. Every member starts at paid = owes = 0.
      2. Credit each bill's payer with the bill's total_amount.
      3. Divide each bill's shared total evenly across the FULL roster.
      4. Add each owner's personal total to their owes.
      5. balance = paid - owes, rounded to cents for output.

    Payers or owners who are no longer on the roster are skipped with a
    warning; their amounts are not redistributed.

    Args:
        bills:   Bill rows (or equivalents) with id, paid_by_id,
                 total_amount and items.
        members: User rows (or equivalents) with id and name.

    Returns:
        {user_id: {"user_id", "user_name", "paid", "owes", "balance"}},
        keyed and ordered by user_id.
    """
    roster = sorted(members, key=lambda m: m.id)
    paid: dict[int, Decimal] = {m.id: ZERO for m in roster}
    owes: dict[int, Decimal] = {m.id: ZERO for m in roster}
    member_count = len(roster)

    for bill in bills:
        if bill.paid_by_id in paid:
            paid[bill.paid_by_id] += to_money(bill.total_amount)
        else:
            logger.warning(
                "Bill %s was paid by user %s who is not a group member; "
                "the payment is not credited.",
                bill.id, bill.paid_by_id,
            )

        shared_total, personal_totals = resolve_contributions(bill)

        if shared_total and member_count:
            share = divide_evenly(shared_total, member_count)
            for member_id in owes:
                owes[member_id] += share

        for owner_id, amount in personal_totals.items():
            if owner_id in owes:
                owes[owner_id] += amount
            else:
                logger.warning(
                    "Bill %s has items owned by user %s who is not a group "
                    "member; %s is not charged.",
                    bill.id, owner_id, amount,
                )

    return {
        m.id: {
            "user_id": m.id,
            "user_name": m.name,
            "paid": quantize_money(paid[m.id]),
            "owes": quantize_money(owes[m.id]),
            "balance": quantize_money(paid[m.id] - owes[m.id]),
        }
        for m in roster
    }


def balance_sum(balances: dict[int, dict]) -> Decimal:
    """Sum of all members' balances. Zero within tolerance for a closed roster."""
    return sum((b["balance"] for b in balances.values()), ZERO)


# ── Transaction Minimizer ──────────────────────────────────────────────────

def minimize_transactions(
        balances: dict[int, dict],
        tolerance: Decimal = DUST_TOLERANCE,
) -> list[dict]:
    """
    Greedy debt simplification over the aggregator's balances.

    Repeatedly matches the largest remaining debtor with the largest
    remaining creditor. Ties are broken by user_id ascending so the output
    is deterministic. Transfers at or below the tolerance are not emitted,
    and a party whose remainder falls to the tolerance is considered done.

    The number of transfers is at most (#debtors + #creditors - 1). Greedy
    matching is not guaranteed to reach the global minimum.

    Returns:
        [{"from_user_id", "from_user_name", "to_user_id", "to_user_name",
          "amount"}] in emission order. Empty when everyone is square.
    """
    names = {uid: b["user_name"] for uid, b in balances.items()}
    nets = {uid: quantize_money(b["balance"]) for uid, b in balances.items()}

    creditors = sorted(
        [[uid, amt] for uid, amt in nets.items() if amt > 0],
        key=lambda x: (-x[1], x[0]),
    )
    debtors = sorted(
        [[uid, -amt] for uid, amt in nets.items() if amt < 0],
        key=lambda x: (-x[1], x[0]),
    )

    transactions: list[dict] = []
    i = j = 0

    while i < len(creditors) and j < len(debtors):
        cid, credit = creditors[i]
        did, debt = debtors[j]

        transfer = min(credit, debt)
        if transfer > tolerance:
            transactions.append({
                "from_user_id": did,
                "from_user_name": names[did],
                "to_user_id": cid,
                "to_user_name": names[cid],
                "amount": transfer,
            })

        creditors[i][1] = credit - transfer
        debtors[j][1] = debt - transfer

        if is_dust(creditors[i][1], tolerance):
            i += 1
        if is_dust(debtors[j][1], tolerance):
            j += 1

    return transactions
