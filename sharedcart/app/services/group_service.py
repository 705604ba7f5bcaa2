"""
services/group_service.py — Group and membership business logic.

Authorization rules:
  - Reading group data:      any member (non-members get 403, not 404)
  - Updating/deleting group: admins only
  - Adding a member:         admins only, by email
  - Removing a member:       admins may remove anyone; a member may remove self
  - Changing a role:         admins only
  - A group always keeps at least one admin (LAST_ADMIN, 409).

The membership queries here (is_member, is_admin, list_members,
count_admins) are the ones bill_service and settlement_service rely on.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from sharedcart.app.errors import AppError, ErrorCode, ErrorKind
from sharedcart.app.models.enums import MemberRole
from sharedcart.app.models.group import Group
from sharedcart.app.models.membership import Membership
from sharedcart.app.models.user import User

logger = logging.getLogger(__name__)


# ── Membership queries ─────────────────────────────────────────────────────

def get_membership(group_id: int, user_id: int, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def is_member(group_id: int, user_id: int, session: Session) -> bool:
    return get_membership(group_id, user_id, session) is not None


def is_admin(group_id: int, user_id: int, session: Session) -> bool:
    membership = get_membership(group_id, user_id, session)
    return membership is not None and membership.role == MemberRole.ADMIN


def count_admins(group_id: int, session: Session) -> int:
    return session.execute(
        select(func.count(Membership.id)).where(
            Membership.group_id == group_id,
            Membership.role == MemberRole.ADMIN,
        )
    ).scalar_one()


def list_members(group_id: int, session: Session) -> list[User]:
    """Returns the current roster as User rows, ordered by user id."""
    stmt = (
        select(User)
        .join(Membership, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(User.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the active Group or raises GROUP_NOT_FOUND. Deleted groups are invisible."""
    group = session.get(Group, group_id)
    if group is None or not group.is_active:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            ErrorKind.NOT_FOUND,
        )
    return group


def require_member(group_id: int, user_id: int, session: Session) -> Membership:
    """Raises FORBIDDEN if user_id is not a member of group_id."""
    membership = get_membership(group_id, user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            ErrorKind.AUTHORIZATION,
        )
    return membership


def require_admin(group_id: int, user_id: int, session: Session, action: str) -> Membership:
    """Raises FORBIDDEN unless user_id is an admin of group_id."""
    membership = require_member(group_id, user_id, session)
    if membership.role != MemberRole.ADMIN:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only group admins can {action}.",
            ErrorKind.AUTHORIZATION,
        )
    return membership


# ── Private helpers ────────────────────────────────────────────────────────

def _member_rows(group_id: int, session: Session) -> list[tuple[User, Membership]]:
    stmt = (
        select(User, Membership)
        .join(Membership, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(User.id.asc())
    )
    return [(user, membership) for user, membership in session.execute(stmt).all()]


def _build_member_dict(user: User, membership: Membership) -> dict:
    return {
        "user_id": user.id,
        "name": user.name,
        "email": user.email,
        "role": membership.role.value,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
    }


def _build_group_dict(group: Group, members: list[tuple[User, Membership]] | None = None) -> dict:
    """Serialises a Group (optionally with its member list) to a plain dict."""
    payload = {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "created_by_id": group.created_by_id,
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }
    if members is not None:
        payload["members"] = [_build_member_dict(u, m) for u, m in members]
    return payload


def _get_target_membership(group_id: int, target_user_id: int, session: Session) -> Membership:
    membership = get_membership(group_id, target_user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.MEMBER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            ErrorKind.NOT_FOUND,
        )
    return membership


def _guard_last_admin(group_id: int, membership: Membership, session: Session, action: str) -> None:
    if membership.role == MemberRole.ADMIN and count_admins(group_id, session) <= 1:
        raise AppError(
            ErrorCode.LAST_ADMIN,
            f"Cannot {action} the last admin of group {group_id}.",
            ErrorKind.STATE_CONFLICT,
        )


# ── Public service functions ───────────────────────────────────────────────

def create_group(
        name: str,
        creator_id: int,
        session: Session,
        description: str | None = None,
) -> dict:
    """
    Creates a new group. The creator becomes its first member, as admin.

    Returns: dict with group details and initial member list.
    """
    group = Group(name=name, description=description, created_by_id=creator_id)
    session.add(group)
    session.flush()  # populate group.id before creating membership

    membership = Membership(
        user_id=creator_id,
        group_id=group.id,
        role=MemberRole.ADMIN,
    )
    session.add(membership)
    session.flush()

    logger.info("Group %s created by user %s", group.id, creator_id)
    return _build_group_dict(group, _member_rows(group.id, session))


def list_groups(user_id: int, session: Session) -> list[dict]:
    """
    Returns all active groups the user belongs to, oldest first.

    Lightweight dicts (no member list); get_group() returns the members.
    """
    stmt = (
        select(Group)
        .join(Membership, Group.id == Membership.group_id)
        .where(
            Membership.user_id == user_id,
            Group.is_active.is_(True),
        )
        .order_by(Group.created_at.asc(), Group.id.asc())
    )
    return [_build_group_dict(g) for g in session.execute(stmt).scalars().all()]


def get_group(group_id: int, caller_id: int, session: Session) -> dict:
    group = get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)
    return _build_group_dict(group, _member_rows(group_id, session))


def update_group(group_id: int, caller_id: int, data: dict, session: Session) -> dict:
    """Applies name/description changes. Admins only."""
    group = get_group_or_404(group_id, session)
    require_admin(group_id, caller_id, session, "update group information")

    if "name" in data:
        group.name = data["name"]
    if "description" in data:
        group.description = data["description"]
    group.updated_at = datetime.now(timezone.utc)
    session.flush()

    return _build_group_dict(group, _member_rows(group_id, session))


def delete_group(group_id: int, caller_id: int, session: Session) -> None:
    """Soft-deletes a group (is_active = false). Admins only."""
    group = get_group_or_404(group_id, session)
    require_admin(group_id, caller_id, session, "delete the group")

    group.is_active = False
    group.updated_at = datetime.now(timezone.utc)
    session.flush()
    logger.info("Group %s deleted by user %s", group_id, caller_id)


def get_group_members(group_id: int, caller_id: int, session: Session) -> list[dict]:
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)
    return [_build_member_dict(u, m) for u, m in _member_rows(group_id, session)]


def add_member(
        group_id: int,
        caller_id: int,
        email: str,
        session: Session,
        role: MemberRole = MemberRole.MEMBER,
) -> dict:
    """
    Adds the user registered under `email` to a group. Admins only.

    Raises:
      AppError(GROUP_NOT_FOUND, not_found)
      AppError(FORBIDDEN, authorization)      — caller is not an admin
      AppError(USER_NOT_FOUND, not_found)     — no user with that email
      AppError(ALREADY_MEMBER, state_conflict)
    """
    get_group_or_404(group_id, session)
    require_admin(group_id, caller_id, session, "add members")

    target_user = session.execute(
        select(User).where(User.email == email.strip().lower())
    ).scalar_one_or_none()
    if target_user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "No user is registered with this email.",
            ErrorKind.NOT_FOUND,
            field="email",
        )

    if is_member(group_id, target_user.id, session):
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"User {target_user.id} is already a member of group {group_id}.",
            ErrorKind.STATE_CONFLICT,
        )

    membership = Membership(
        user_id=target_user.id,
        group_id=group_id,
        role=role,
        invited_by_id=caller_id,
    )
    session.add(membership)
    session.flush()

    return _build_member_dict(target_user, membership)


def remove_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> None:
    """
    Removes a user from a group.

      - An admin may remove any member.
      - Any member may remove themselves.
      - The last admin can never be removed (LAST_ADMIN).
    """
    get_group_or_404(group_id, session)
    caller = require_member(group_id, caller_id, session)

    if caller.role != MemberRole.ADMIN and caller_id != target_user_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You may only remove yourself from a group unless you are an admin.",
            ErrorKind.AUTHORIZATION,
        )

    membership = _get_target_membership(group_id, target_user_id, session)
    _guard_last_admin(group_id, membership, session, "remove")

    session.delete(membership)
    session.flush()


def update_member_role(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        role: MemberRole,
        session: Session,
) -> dict:
    """Changes a member's role. Admins only; the last admin cannot be demoted."""
    get_group_or_404(group_id, session)
    require_admin(group_id, caller_id, session, "update member roles")

    membership = _get_target_membership(group_id, target_user_id, session)
    if role != MemberRole.ADMIN:
        _guard_last_admin(group_id, membership, session, "demote")

    membership.role = role
    session.flush()

    return _build_member_dict(session.get(User, target_user_id), membership)
