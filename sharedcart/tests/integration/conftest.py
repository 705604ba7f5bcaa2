"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against create_app("testing"): in-memory SQLite unless
    TEST_DATABASE_URL points at a real database.
  - The app is created once per session and all tables are created once via
    db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)     → dict with user + tokens
  - login(client, ...)        → dict with user + tokens
  - auth_headers(token)       → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)   → group dict
  - add_member(...)           → HTTP response
  - make_bill(...)            → HTTP response
  - shared_item / personal_item → item payloads for make_bill

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

import pytest
from sqlalchemy import text

from sharedcart.app import create_app
from sharedcart.app.extensions import db as _db

# Children before parents.
_TABLES_IN_DELETE_ORDER = (
    "settlement_transactions",
    "settlement_bills",
    "settlements",
    "item_owners",
    "bill_items",
    "bills",
    "memberships",
    "refresh_tokens",
    "groups",
    "users",
)


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Creates the app in 'testing' mode once, with all tables created."""
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test in the integration suite."""
    yield

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        for table in _TABLES_IN_DELETE_ORDER:
            _db.session.execute(text(f"DELETE FROM {table}"))
        _db.session.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    name: str = "alice",
    email: str | None = None,
    password: str = "Password1",
) -> dict:
    """
    Registers a new user and returns the full response data dict.
    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    if email is None:
        email = f"{name}@test.com"
    resp = client.post(
        "/api/v1/auth/register",
        json={"name": name, "email": email, "password": password},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(client, email: str, password: str = "Password1") -> dict:
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_group(client, token: str, name: str = "Test Group") -> dict:
    """Creates a group; the token owner becomes its admin and first member."""
    resp = client.post(
        "/api/v1/groups/",
        json={"name": name},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_member(client, token: str, group_id: int, email: str, role: str | None = None):
    """Adds a registered user to a group by email (admin token required)."""
    payload = {"email": email}
    if role is not None:
        payload["role"] = role
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json=payload,
        headers=auth_headers(token),
    )


def shared_item(amount: str, name: str = "Shared", quantity: int = 1) -> dict:
    return {"name": name, "amount": amount, "quantity": quantity, "is_shared": True}


def personal_item(amount: str, owner_ids: list[int], name: str = "Personal", quantity: int = 1) -> dict:
    return {
        "name": name,
        "amount": amount,
        "quantity": quantity,
        "is_shared": False,
        "owner_ids": owner_ids,
    }


def make_bill(
    client,
    token: str,
    group_id: int,
    total_amount: str,
    items: list[dict],
    title: str = "Test Bill",
    paid_by_id: int | None = None,
):
    """Creates a bill and returns the HTTP response."""
    payload: dict = {
        "group_id": group_id,
        "title": title,
        "total_amount": total_amount,
        "items": items,
    }
    if paid_by_id is not None:
        payload["paid_by_id"] = paid_by_id

    return client.post("/api/v1/bills/", json=payload, headers=auth_headers(token))
