"""
tests/integration/test_settlements.py — Settlement preview and lifecycle.

Flow under test:
  POST /settlements/calculate   preview only, repeatable, order independent
  POST /settlements/            pending settlement; bills untouched
  POST /settlements/:id/confirm pending -> confirmed, every bill -> settled
  POST /settlements/:id/transactions/:tid/pay

Money values arrive as strings ("10.00") and are compared as Decimal.
"""

from __future__ import annotations

from decimal import Decimal

from .conftest import (
    add_member,
    auth_headers,
    make_bill,
    make_group,
    personal_item,
    register,
    shared_item,
)


def _setup(client):
    """Alice (admin), Bob and Carol in one group. Returns (alice, bob, carol, group)."""
    alice = register(client, "alice")
    bob = register(client, "bob")
    carol = register(client, "carol")
    group = make_group(client, alice["access_token"], "Flat 3B")
    add_member(client, alice["access_token"], group["id"], "bob@test.com")
    add_member(client, alice["access_token"], group["id"], "carol@test.com")
    return alice, bob, carol, group


def _dinner(client, alice, group) -> int:
    """30.00 paid by Alice, one shared item."""
    resp = make_bill(client, alice["access_token"], group["id"], "30.00", [shared_item("30.00")], title="Dinner")
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]["id"]


def _carols_groceries(client, bob, carol, group) -> int:
    """20.00 paid by Bob, one item owned by Carol alone."""
    resp = make_bill(
        client, bob["access_token"], group["id"], "20.00",
        [personal_item("20.00", [carol["user"]["id"]])],
        title="Groceries",
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]["id"]


def _calculate(client, token, group_id, bill_ids):
    return client.post(
        "/api/v1/settlements/calculate",
        json={"group_id": group_id, "bill_ids": bill_ids},
        headers=auth_headers(token),
    )


def _create(client, token, group_id, bill_ids):
    return client.post(
        "/api/v1/settlements/",
        json={"group_id": group_id, "bill_ids": bill_ids},
        headers=auth_headers(token),
    )


def _transfers(data) -> list[tuple[int, int, Decimal]]:
    return [
        (t["from_user_id"], t["to_user_id"], Decimal(t["amount"]))
        for t in data["transactions"]
    ]


def _bill_status(client, token, bill_id) -> str:
    return client.get(f"/api/v1/bills/{bill_id}", headers=auth_headers(token)).get_json()["data"]["status"]


# ═══════════════════════════════════════════════════════════════════════════
# POST /settlements/calculate
# ═══════════════════════════════════════════════════════════════════════════

class TestCalculate:

    def test_shared_bill_preview(self, client):
        alice, bob, carol, group = _setup(client)
        a, b, c = alice["user"]["id"], bob["user"]["id"], carol["user"]["id"]
        bill_id = _dinner(client, alice, group)

        resp = _calculate(client, bob["access_token"], group["id"], [bill_id])
        assert resp.status_code == 200
        data = resp.get_json()["data"]

        assert data["group_id"] == group["id"]
        assert data["bill_count"] == 1
        assert Decimal(data["total_amount"]) == Decimal("30.00")
        assert [row["user_id"] for row in data["balances"]] == [a, b, c]
        assert [Decimal(row["owes"]) for row in data["balances"]] == [Decimal("10.00")] * 3
        assert [Decimal(row["balance"]) for row in data["balances"]] == [
            Decimal("20.00"), Decimal("-10.00"), Decimal("-10.00"),
        ]
        assert _transfers(data) == [(b, a, Decimal("10.00")), (c, a, Decimal("10.00"))]

    def test_money_values_are_strings(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)

        data = _calculate(client, alice["access_token"], group["id"], [bill_id]).get_json()["data"]

        assert isinstance(data["total_amount"], str)
        assert all(isinstance(row["balance"], str) for row in data["balances"])
        assert all(isinstance(t["amount"], str) for t in data["transactions"])

    def test_two_bills_settle_in_at_most_two_transfers(self, client):
        alice, bob, carol, group = _setup(client)
        a, b, c = alice["user"]["id"], bob["user"]["id"], carol["user"]["id"]
        ids = [_dinner(client, alice, group), _carols_groceries(client, bob, carol, group)]

        data = _calculate(client, alice["access_token"], group["id"], ids).get_json()["data"]

        transfers = _transfers(data)
        assert len(transfers) <= 2
        assert transfers == [(c, a, Decimal("20.00")), (c, b, Decimal("10.00"))]

        net = {row["user_id"]: Decimal(row["balance"]) for row in data["balances"]}
        for payer, payee, amount in transfers:
            net[payer] += amount
            net[payee] -= amount
        assert all(abs(v) <= Decimal("0.01") for v in net.values())

    def test_repeatable_and_independent_of_id_order(self, client):
        alice, bob, carol, group = _setup(client)
        first = _dinner(client, alice, group)
        second = _carols_groceries(client, bob, carol, group)

        forward = _calculate(client, alice["access_token"], group["id"], [first, second]).get_json()["data"]
        again = _calculate(client, alice["access_token"], group["id"], [first, second]).get_json()["data"]
        reverse = _calculate(client, alice["access_token"], group["id"], [second, first, second]).get_json()["data"]

        assert forward == again == reverse
        assert forward["bill_count"] == 2

    def test_preview_writes_nothing(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)
        _calculate(client, alice["access_token"], group["id"], [bill_id])

        listed = client.get(
            f"/api/v1/settlements/?group_id={group['id']}",
            headers=auth_headers(alice["access_token"]),
        ).get_json()["data"]
        assert listed == []
        assert _bill_status(client, alice["access_token"], bill_id) == "pending"

    def test_empty_selection_returns_400(self, client):
        alice, bob, carol, group = _setup(client)

        resp = _calculate(client, alice["access_token"], group["id"], [])
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "bill_ids"

    def test_unknown_bill_returns_404(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)

        resp = _calculate(client, alice["access_token"], group["id"], [bill_id, bill_id + 1000])
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "BILL_NOT_FOUND"

    def test_bill_from_another_group_returns_404(self, client):
        alice, bob, carol, group = _setup(client)
        other = make_group(client, alice["access_token"], "Holiday")
        foreign = make_bill(client, alice["access_token"], other["id"], "8.00", [shared_item("8.00")])
        foreign_id = foreign.get_json()["data"]["id"]

        resp = _calculate(client, alice["access_token"], group["id"], [foreign_id])
        assert resp.status_code == 404

    def test_non_member_returns_403(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)
        dave = register(client, "dave")

        resp = _calculate(client, dave["access_token"], group["id"], [bill_id])
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"


# ═══════════════════════════════════════════════════════════════════════════
# POST /settlements
# ═══════════════════════════════════════════════════════════════════════════

class TestCreate:

    def test_create_stores_pending_settlement(self, client):
        alice, bob, carol, group = _setup(client)
        first = _dinner(client, alice, group)
        second = _carols_groceries(client, bob, carol, group)

        resp = _create(client, alice["access_token"], group["id"], [second, first])
        assert resp.status_code == 201
        data = resp.get_json()["data"]

        assert data["status"] == "pending"
        assert data["settled_at"] is None
        assert data["created_by_id"] == alice["user"]["id"]
        assert data["bill_ids"] == sorted([first, second])
        assert [t["status"] for t in data["transactions"]] == ["pending", "pending"]
        assert Decimal(data["outstanding_amount"]) == Decimal("30.00")

    def test_create_matches_preview(self, client):
        alice, bob, carol, group = _setup(client)
        ids = [_dinner(client, alice, group), _carols_groceries(client, bob, carol, group)]

        preview = _calculate(client, alice["access_token"], group["id"], ids).get_json()["data"]
        stored = _create(client, alice["access_token"], group["id"], ids).get_json()["data"]

        assert _transfers(stored) == _transfers(preview)

    def test_create_leaves_bills_untouched(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)

        _create(client, alice["access_token"], group["id"], [bill_id])

        assert _bill_status(client, alice["access_token"], bill_id) == "pending"

    def test_get_and_list(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)
        created = _create(client, alice["access_token"], group["id"], [bill_id]).get_json()["data"]

        fetched = client.get(
            f"/api/v1/settlements/{created['id']}",
            headers=auth_headers(bob["access_token"]),
        ).get_json()["data"]
        assert fetched["id"] == created["id"]
        assert fetched["transactions"] == created["transactions"]

        listed = client.get(
            f"/api/v1/settlements/?group_id={group['id']}&status=pending",
            headers=auth_headers(bob["access_token"]),
        ).get_json()["data"]
        assert [s["id"] for s in listed] == [created["id"]]


# ═══════════════════════════════════════════════════════════════════════════
# POST /settlements/:id/confirm
# ═══════════════════════════════════════════════════════════════════════════

class TestConfirm:

    def test_confirm_settles_every_linked_bill(self, client):
        alice, bob, carol, group = _setup(client)
        first = _dinner(client, alice, group)
        second = _carols_groceries(client, bob, carol, group)
        client.post(f"/api/v1/bills/{first}/finalize", headers=auth_headers(alice["access_token"]))
        settlement = _create(client, alice["access_token"], group["id"], [first, second]).get_json()["data"]

        resp = client.post(
            f"/api/v1/settlements/{settlement['id']}/confirm",
            headers=auth_headers(alice["access_token"]),
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["status"] == "confirmed"
        assert data["settled_at"] is not None

        assert _bill_status(client, alice["access_token"], first) == "settled"
        assert _bill_status(client, alice["access_token"], second) == "settled"

    def test_second_confirm_returns_409(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)
        settlement = _create(client, alice["access_token"], group["id"], [bill_id]).get_json()["data"]
        url = f"/api/v1/settlements/{settlement['id']}/confirm"

        assert client.post(url, headers=auth_headers(alice["access_token"])).status_code == 200
        resp = client.post(url, headers=auth_headers(alice["access_token"]))

        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "SETTLEMENT_NOT_PENDING"

    def test_plain_member_cannot_confirm_someone_elses_settlement(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)
        settlement = _create(client, alice["access_token"], group["id"], [bill_id]).get_json()["data"]

        resp = client.post(
            f"/api/v1/settlements/{settlement['id']}/confirm",
            headers=auth_headers(bob["access_token"]),
        )
        assert resp.status_code == 403
        assert _bill_status(client, alice["access_token"], bill_id) == "pending"

    def test_unknown_settlement_returns_404(self, client):
        alice = register(client, "alice")

        resp = client.post("/api/v1/settlements/9999/confirm", headers=auth_headers(alice["access_token"]))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "SETTLEMENT_NOT_FOUND"

    def test_settled_bills_cannot_be_settled_again(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)
        settlement = _create(client, alice["access_token"], group["id"], [bill_id]).get_json()["data"]
        client.post(f"/api/v1/settlements/{settlement['id']}/confirm", headers=auth_headers(alice["access_token"]))

        resp = _create(client, alice["access_token"], group["id"], [bill_id])
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "BILL_ALREADY_SETTLED"

    def test_second_pending_settlement_over_same_bills_cannot_be_confirmed(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)
        headers = auth_headers(alice["access_token"])
        first = _create(client, alice["access_token"], group["id"], [bill_id]).get_json()["data"]
        second = _create(client, alice["access_token"], group["id"], [bill_id]).get_json()["data"]

        assert client.post(f"/api/v1/settlements/{first['id']}/confirm", headers=headers).status_code == 200

        resp = client.post(f"/api/v1/settlements/{second['id']}/confirm", headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "BILL_ALREADY_SETTLED"

        still_pending = client.get(f"/api/v1/settlements/{second['id']}", headers=headers).get_json()["data"]
        assert still_pending["status"] == "pending"
        assert still_pending["settled_at"] is None

        confirmed = client.get(
            f"/api/v1/settlements/?group_id={group['id']}&status=confirmed",
            headers=headers,
        ).get_json()["data"]
        assert [s["id"] for s in confirmed] == [first["id"]]

    def test_settled_bill_is_locked_for_edits(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)
        settlement = _create(client, alice["access_token"], group["id"], [bill_id]).get_json()["data"]
        client.post(f"/api/v1/settlements/{settlement['id']}/confirm", headers=auth_headers(alice["access_token"]))

        resp = client.patch(
            f"/api/v1/bills/{bill_id}",
            json={"title": "Too late"},
            headers=auth_headers(alice["access_token"]),
        )
        assert resp.status_code == 409


# ═══════════════════════════════════════════════════════════════════════════
# POST /settlements/:id/transactions/:tid/pay
# ═══════════════════════════════════════════════════════════════════════════

class TestPayTransaction:

    def _confirmed(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)
        settlement = _create(client, alice["access_token"], group["id"], [bill_id]).get_json()["data"]
        client.post(f"/api/v1/settlements/{settlement['id']}/confirm", headers=auth_headers(alice["access_token"]))
        return alice, bob, carol, settlement

    def test_payer_marks_transfer_paid(self, client):
        alice, bob, carol, settlement = self._confirmed(client)
        bobs = next(t for t in settlement["transactions"] if t["from_user_id"] == bob["user"]["id"])

        resp = client.post(
            f"/api/v1/settlements/{settlement['id']}/transactions/{bobs['id']}/pay",
            json={"notes": "bank transfer"},
            headers=auth_headers(bob["access_token"]),
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["status"] == "paid"
        assert data["paid_at"] is not None
        assert data["notes"] == "bank transfer"

        refreshed = client.get(
            f"/api/v1/settlements/{settlement['id']}",
            headers=auth_headers(alice["access_token"]),
        ).get_json()["data"]
        assert Decimal(refreshed["outstanding_amount"]) == Decimal("10.00")

    def test_paying_twice_returns_409(self, client):
        alice, bob, carol, settlement = self._confirmed(client)
        tx = settlement["transactions"][0]
        url = f"/api/v1/settlements/{settlement['id']}/transactions/{tx['id']}/pay"

        assert client.post(url, json={}, headers=auth_headers(alice["access_token"])).status_code == 200
        resp = client.post(url, json={}, headers=auth_headers(alice["access_token"]))

        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "TRANSACTION_ALREADY_PAID"

    def test_uninvolved_member_cannot_pay_for_others(self, client):
        alice, bob, carol, settlement = self._confirmed(client)
        bobs = next(t for t in settlement["transactions"] if t["from_user_id"] == bob["user"]["id"])

        resp = client.post(
            f"/api/v1/settlements/{settlement['id']}/transactions/{bobs['id']}/pay",
            json={},
            headers=auth_headers(carol["access_token"]),
        )
        assert resp.status_code == 403

    def test_pending_settlement_cannot_be_paid(self, client):
        alice, bob, carol, group = _setup(client)
        bill_id = _dinner(client, alice, group)
        settlement = _create(client, alice["access_token"], group["id"], [bill_id]).get_json()["data"]
        tx = settlement["transactions"][0]

        resp = client.post(
            f"/api/v1/settlements/{settlement['id']}/transactions/{tx['id']}/pay",
            json={},
            headers=auth_headers(alice["access_token"]),
        )
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "SETTLEMENT_NOT_CONFIRMED"
