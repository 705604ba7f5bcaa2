"""
tests/unit/test_balance_aggregation.py — balance_service.aggregate_balances.

What this file proves:
  - The three reference scenarios (shared bill, personal bill, zero-owner item)
  - Zero-sum: balances of a closed roster sum to zero within tolerance
  - Order independence: permuting bills or items changes nothing
  - Roster edge cases: members with no activity, payers who left the group

No database, no Flask. Members and bills are SimpleNamespace rows.
"""

from __future__ import annotations

import itertools
from decimal import Decimal
from types import SimpleNamespace

from sharedcart.app.money import DUST_TOLERANCE
from sharedcart.app.services.balance_service import aggregate_balances, balance_sum

A, B, C, D = 1, 2, 3, 4


def _member(uid, name):
    return SimpleNamespace(id=uid, name=name)


ROSTER = [_member(A, "Alice"), _member(B, "Bob"), _member(C, "Carol")]


def _item(amount, quantity=1, is_shared=False, owner_ids=()):
    return SimpleNamespace(
        id=None,
        amount=Decimal(amount),
        quantity=quantity,
        is_shared=is_shared,
        owner_ids=list(owner_ids),
    )


def _bill(bill_id, paid_by_id, total, *items):
    return SimpleNamespace(
        id=bill_id,
        paid_by_id=paid_by_id,
        total_amount=Decimal(total),
        items=list(items),
    )


def _shared_dinner():
    # 30.00 paid by A, one shared item.
    return _bill(1, A, "30.00", _item("30.00", is_shared=True))


def _carols_groceries():
    # 20.00 paid by B, one personal item owned by C.
    return _bill(2, B, "20.00", _item("20.00", owner_ids=[C]))


def _net(balances):
    return {uid: b["balance"] for uid, b in balances.items()}


# ── Reference scenarios ────────────────────────────────────────────────────

def test_shared_bill_splits_across_full_roster():
    balances = aggregate_balances([_shared_dinner()], ROSTER)

    assert [b["owes"] for b in balances.values()] == [Decimal("10.00")] * 3
    assert _net(balances) == {
        A: Decimal("20.00"),
        B: Decimal("-10.00"),
        C: Decimal("-10.00"),
    }
    assert balances[A]["paid"] == Decimal("30.00")


def test_personal_bill_charges_only_the_owner():
    balances = aggregate_balances([_carols_groceries()], ROSTER)

    assert _net(balances) == {
        A: Decimal("0.00"),
        B: Decimal("20.00"),
        C: Decimal("-20.00"),
    }


def test_shared_and_personal_bills_combine():
    balances = aggregate_balances([_shared_dinner(), _carols_groceries()], ROSTER)

    assert _net(balances) == {
        A: Decimal("20.00"),
        B: Decimal("10.00"),
        C: Decimal("-30.00"),
    }
    assert balance_sum(balances) == Decimal("0.00")


def test_zero_owner_item_leaves_payer_surplus_without_error():
    bill = _bill(3, A, "25.00", _item("15.00", is_shared=True), _item("10.00"))

    balances = aggregate_balances([bill], ROSTER)

    # Only the shared 15.00 is owed; the payer keeps the unowned 10.00 as surplus.
    assert balances[A]["owes"] == Decimal("5.00")
    assert balances[B]["owes"] == Decimal("5.00")
    assert balances[C]["owes"] == Decimal("5.00")
    assert balance_sum(balances) == Decimal("10.00")


# ── Output shape ───────────────────────────────────────────────────────────

def test_balance_entries_carry_names_and_are_ordered_by_user_id():
    roster = [_member(C, "Carol"), _member(A, "Alice"), _member(B, "Bob")]

    balances = aggregate_balances([_shared_dinner()], roster)

    assert list(balances) == [A, B, C]
    assert balances[B] == {
        "user_id": B,
        "user_name": "Bob",
        "paid": Decimal("0.00"),
        "owes": Decimal("10.00"),
        "balance": Decimal("-10.00"),
    }


def test_members_without_activity_appear_with_zero_balance():
    roster = ROSTER + [_member(D, "Dan")]

    balances = aggregate_balances([_carols_groceries()], roster)

    assert balances[D]["paid"] == Decimal("0.00")
    assert balances[D]["owes"] == Decimal("0.00")
    assert balances[D]["balance"] == Decimal("0.00")


def test_no_bills_gives_all_zero_balances():
    balances = aggregate_balances([], ROSTER)
    assert all(b["balance"] == Decimal("0.00") for b in balances.values())


def test_payer_outside_roster_is_not_credited():
    bill = _bill(4, 99, "30.00", _item("30.00", is_shared=True))

    balances = aggregate_balances([bill], ROSTER)

    assert 99 not in balances
    assert _net(balances) == {
        A: Decimal("-10.00"),
        B: Decimal("-10.00"),
        C: Decimal("-10.00"),
    }


def test_owner_outside_roster_is_not_charged():
    bill = _bill(5, A, "20.00", _item("20.00", owner_ids=[B, 99]))

    balances = aggregate_balances([bill], ROSTER)

    assert balances[B]["owes"] == Decimal("10.00")
    assert 99 not in balances


# ── Zero-sum and determinism ───────────────────────────────────────────────

def test_zero_sum_with_uneven_division():
    bills = [
        _bill(1, A, "100.00", _item("100.00", is_shared=True)),
        _bill(2, B, "10.00", _item("10.00", owner_ids=[A, B, C])),
        _bill(3, C, "7.01", _item("7.01", is_shared=True)),
    ]

    balances = aggregate_balances(bills, ROSTER)

    assert abs(balance_sum(balances)) <= DUST_TOLERANCE * len(ROSTER)


def test_result_independent_of_bill_order():
    bills = [
        _shared_dinner(),
        _carols_groceries(),
        _bill(3, C, "10.00", _item("3.33", owner_ids=[A, B]), _item("6.67", is_shared=True)),
    ]
    expected = aggregate_balances(bills, ROSTER)

    for permutation in itertools.permutations(bills):
        assert aggregate_balances(list(permutation), ROSTER) == expected


def test_result_independent_of_item_order():
    items = [
        _item("1.11", is_shared=True),
        _item("2.22", owner_ids=[A, C]),
        _item("3.33", quantity=3, owner_ids=[B]),
    ]
    forward = _bill(1, A, "13.32", *items)
    backward = _bill(1, A, "13.32", *reversed(items))

    assert aggregate_balances([forward], ROSTER) == aggregate_balances([backward], ROSTER)
