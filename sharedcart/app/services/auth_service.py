"""
services/auth_service.py — Authentication business logic.

Responsibilities:
  - User registration and credential validation (login by email)
  - JWT access token creation (HS256)
  - Refresh token lifecycle (creation, validation, revocation)
  - Password hashing (bcrypt) and verification

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes
  - current_app.config is read ONLY for the JWT secret, token TTLs and the
    bcrypt cost factor, so secrets never bypass the config classes.

Token design:
  - Access token: JWT, HS256, sub = user_id (str)
  - Refresh token: cryptographically random hex string, stored in DB as a
    SHA-256 hash (never the raw value). Revoked on logout.
  - The raw refresh token is returned to the client once and never stored.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timezone

import bcrypt
import jwt
from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import Session

from sharedcart.app.errors import AppError, ErrorCode, ErrorKind
from sharedcart.app.models.refresh_token import RefreshToken
from sharedcart.app.models.user import User


# ── Private helpers ────────────────────────────────────────────────────────

def _hash_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw token string. Used for refresh token storage."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _create_access_token(user_id: int) -> str:
    """
    Creates a signed JWT access token.
    Payload: sub (user_id as str), iat, exp, jti.
    """
    now = datetime.now(timezone.utc)
    expiry = now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": expiry,
        # Keeps tokens unique even when issued in the same second.
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def _create_refresh_token(user_id: int, session: Session) -> str:
    """
    Stores the SHA-256 hash of a new refresh token and returns the raw token,
    which is sent to the client once.
    """
    raw_token = secrets.token_hex(32)
    expires_at = datetime.now(timezone.utc) + current_app.config["JWT_REFRESH_TOKEN_EXPIRES"]

    session.add(RefreshToken(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=expires_at,
    ))
    session.flush()

    return raw_token


def _build_token_pair(user_id: int, session: Session) -> dict:
    return {
        "access_token": _create_access_token(user_id),
        "refresh_token": _create_refresh_token(user_id, session),
    }


def _build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _get_refresh_record(raw_refresh_token: str, session: Session) -> RefreshToken | None:
    return session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == _hash_token(raw_refresh_token))
    ).scalar_one_or_none()


# ── Public service functions ───────────────────────────────────────────────

def hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def register_user(
        name: str,
        email: str,
        password: str,
        session: Session,
) -> dict:
    """
    Creates a new user account and issues an access + refresh token pair.

    Raises:
      AppError(DUPLICATE_EMAIL, state_conflict) — email already registered

    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    existing = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            ErrorKind.STATE_CONFLICT,
            field="email",
        )

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
    )
    session.add(user)
    session.flush()  # populate user.id before creating refresh token

    return {
        "user": _build_user_dict(user),
        **_build_token_pair(user.id, session),
    }


def login_user(
        email: str,
        password: str,
        session: Session,
) -> dict:
    """
    Validates credentials and issues a new access + refresh token pair.

    Raises:
      AppError(INVALID_CREDENTIALS, authentication) — unknown email or wrong
      password. The same error for both avoids account enumeration.
    """
    user = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()

    if user is None or not verify_password(password, user.password_hash):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The email or password is incorrect.",
            ErrorKind.AUTHENTICATION,
        )

    return {
        "user": _build_user_dict(user),
        **_build_token_pair(user.id, session),
    }


def refresh_access_token(
        raw_refresh_token: str,
        session: Session,
) -> dict:
    """
    Validates a refresh token and issues a new access token.

    The refresh token is not rotated; it stays valid until it expires or is
    revoked via logout.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, authentication) — not found, revoked, or expired.
    """
    record = _get_refresh_record(raw_refresh_token, session)
    now = datetime.now(timezone.utc)

    if record is None or record.revoked or _as_utc(record.expires_at) <= now:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid, expired, or has been revoked.",
            ErrorKind.AUTHENTICATION,
        )

    return {
        "access_token": _create_access_token(record.user_id),
    }


def logout_user(
        raw_refresh_token: str,
        user_id: int,
        session: Session,
) -> None:
    """
    Revokes one of the caller's refresh tokens. Access tokens are short-lived
    and simply expire.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, authentication) — not found, already
      revoked, or issued to another user.
    """
    record = _get_refresh_record(raw_refresh_token, session)

    if record is None or record.revoked or record.user_id != user_id:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid or has already been revoked.",
            ErrorKind.AUTHENTICATION,
        )

    record.revoked = True
    session.flush()


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile of the currently authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, not_found) — the user behind a still-valid
      token no longer exists.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            ErrorKind.NOT_FOUND,
        )
    return _build_user_dict(user)
