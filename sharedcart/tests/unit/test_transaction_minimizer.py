"""
tests/unit/test_transaction_minimizer.py — balance_service.minimize_transactions.

What this file proves:
  - All-zero or empty input → no transfers
  - Reference scenarios produce the expected transfers
  - Applying the emitted transfers zeroes every balance (within tolerance)
  - Transfer count stays within #debtors + #creditors - 1, and within
    min(#debtors, #creditors) when one side has a single party
  - Ties are broken by user id ascending; output is deterministic
  - Amounts at or below the dust tolerance are never emitted
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

import pytest

from sharedcart.app.money import DUST_TOLERANCE
from sharedcart.app.services.balance_service import minimize_transactions


# ── Helpers ────────────────────────────────────────────────────────────────

def _balances(**nets: str) -> dict[int, dict]:
    """_balances(u1="20.00", u2="-20.00") → aggregator-shaped dict keyed by id."""
    result = {}
    for key, net in nets.items():
        uid = int(key[1:])
        result[uid] = {
            "user_id": uid,
            "user_name": f"user{uid}",
            "paid": Decimal("0.00"),
            "owes": Decimal("0.00"),
            "balance": Decimal(net),
        }
    return result


def _assert_settles(balances: dict[int, dict], transactions: list[dict]) -> None:
    """Applying the transfers must bring every member to zero."""
    remaining = defaultdict(lambda: Decimal("0.00"))
    for uid, b in balances.items():
        remaining[uid] = b["balance"]
    for txn in transactions:
        remaining[txn["from_user_id"]] += txn["amount"]
        remaining[txn["to_user_id"]] -= txn["amount"]

    for uid, amount in remaining.items():
        assert abs(amount) <= DUST_TOLERANCE, f"user {uid} left with {amount}"


def _counts(balances: dict[int, dict]) -> tuple[int, int]:
    debtors = sum(1 for b in balances.values() if b["balance"] < -DUST_TOLERANCE)
    creditors = sum(1 for b in balances.values() if b["balance"] > DUST_TOLERANCE)
    return debtors, creditors


# ── Tests ──────────────────────────────────────────────────────────────────

def test_all_zero_returns_empty_list():
    assert minimize_transactions(_balances(u1="0.00", u2="0.00", u3="0.00")) == []


def test_empty_input_returns_empty_list():
    assert minimize_transactions({}) == []


def test_shared_bill_scenario():
    balances = _balances(u1="20.00", u2="-10.00", u3="-10.00")

    transactions = minimize_transactions(balances)

    assert transactions == [
        {
            "from_user_id": 2,
            "from_user_name": "user2",
            "to_user_id": 1,
            "to_user_name": "user1",
            "amount": Decimal("10.00"),
        },
        {
            "from_user_id": 3,
            "from_user_name": "user3",
            "to_user_id": 1,
            "to_user_name": "user1",
            "amount": Decimal("10.00"),
        },
    ]


def test_combined_scenario_needs_at_most_two_transfers():
    balances = _balances(u1="20.00", u2="10.00", u3="-30.00")

    transactions = minimize_transactions(balances)

    assert len(transactions) <= 2
    assert [(t["from_user_id"], t["to_user_id"], t["amount"]) for t in transactions] == [
        (3, 1, Decimal("20.00")),
        (3, 2, Decimal("10.00")),
    ]
    _assert_settles(balances, transactions)


def test_single_creditor_needs_one_transfer_per_debtor():
    balances = _balances(u1="60.00", u2="-15.00", u3="-20.00", u4="-25.00")

    transactions = minimize_transactions(balances)

    debtors, creditors = _counts(balances)
    assert creditors == 1
    assert len(transactions) == debtors
    assert all(t["to_user_id"] == 1 for t in transactions)
    # Largest debtor first.
    assert [t["from_user_id"] for t in transactions] == [4, 3, 2]
    _assert_settles(balances, transactions)


def test_largest_debtor_matched_with_largest_creditor():
    balances = _balances(u1="50.00", u2="30.00", u3="-70.00", u4="-10.00")

    transactions = minimize_transactions(balances)

    assert transactions[0]["from_user_id"] == 3
    assert transactions[0]["to_user_id"] == 1
    assert transactions[0]["amount"] == Decimal("50.00")
    _assert_settles(balances, transactions)


@pytest.mark.parametrize(
    "nets",
    [
        {"u1": "10.00", "u2": "-10.00"},
        {"u1": "33.34", "u2": "-16.67", "u3": "-16.67"},
        {"u1": "45.50", "u2": "12.25", "u3": "-20.00", "u4": "-37.75"},
        {"u1": "5.00", "u2": "5.00", "u3": "5.00", "u4": "-7.50", "u5": "-7.50"},
        {"u1": "100.00", "u2": "-0.01", "u3": "-99.99"},
    ],
)
def test_transfers_settle_within_general_bound(nets):
    balances = _balances(**nets)

    transactions = minimize_transactions(balances)

    debtors, creditors = _counts(balances)
    assert len(transactions) <= debtors + creditors - 1
    _assert_settles(balances, transactions)


def test_ties_broken_by_user_id_ascending():
    balances = _balances(u5="10.00", u2="10.00", u9="-10.00", u4="-10.00")

    transactions = minimize_transactions(balances)

    assert [(t["from_user_id"], t["to_user_id"]) for t in transactions] == [(4, 2), (9, 5)]


def test_output_is_deterministic():
    balances = _balances(u1="12.34", u2="-5.67", u3="-6.67", u4="0.00")
    assert minimize_transactions(balances) == minimize_transactions(dict(reversed(balances.items())))


def test_dust_is_never_emitted():
    balances = _balances(u1="0.01", u2="-0.01")
    assert minimize_transactions(balances) == []


def test_no_self_transfers_and_amounts_are_decimal():
    balances = _balances(u1="25.00", u2="-12.50", u3="-12.50")

    for txn in minimize_transactions(balances):
        assert txn["from_user_id"] != txn["to_user_id"]
        assert isinstance(txn["amount"], Decimal)
        assert txn["amount"] > DUST_TOLERANCE


def test_custom_tolerance_suppresses_small_transfers():
    balances = _balances(u1="0.50", u2="-0.50")
    assert minimize_transactions(balances, tolerance=Decimal("1.00")) == []
