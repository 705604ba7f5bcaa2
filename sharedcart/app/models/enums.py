"""
models/enums.py — Status and role enums shared by models, schemas and services.

Defined apart from the models so they can be imported by schemas and services
without pulling in the mapped classes. Do not duplicate these as plain string
constants anywhere else in the codebase.
"""

from __future__ import annotations

import enum


class MemberRole(str, enum.Enum):
    ADMIN  = "admin"
    MEMBER = "member"


class BillStatus(str, enum.Enum):
    """pending -> finalized -> settled. No other transition exists."""
    PENDING   = "pending"
    FINALIZED = "finalized"
    SETTLED   = "settled"


class SettlementStatus(str, enum.Enum):
    """pending -> confirmed, exactly once."""
    PENDING   = "pending"
    CONFIRMED = "confirmed"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    PAID    = "paid"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'pending'), not names ('PENDING')."""
    return [member.value for member in enum_cls]
