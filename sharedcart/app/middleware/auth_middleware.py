"""
middleware/auth_middleware.py — JWT authentication decorator.

@require_auth reads "Authorization: Bearer <token>", verifies the HS256
signature and expiry, and stores the caller's id on flask.g.user_id.

Only authentication happens here (401). Whether the caller may touch a
group, bill or settlement is decided by the services (403), which receive
the user id as a plain int and know nothing about JWTs or headers.

Error codes:
  TOKEN_MISSING  — no Authorization header
  TOKEN_INVALID  — malformed header, bad signature, or unusable 'sub' claim
  TOKEN_EXPIRED  — signature fine, exp in the past; use POST /auth/refresh
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from sharedcart.app.errors import AppError, ErrorCode, ErrorKind


def _auth_error(code: str, message: str) -> AppError:
    return AppError(code, message, ErrorKind.AUTHENTICATION)


def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    if not header:
        raise _auth_error(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
        )

    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise _auth_error(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
        )
    return token


def _decode(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError as exc:
        raise _auth_error(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Use POST /auth/refresh to obtain a new one.",
        ) from exc
    except jwt.InvalidTokenError as exc:
        raise _auth_error(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
        ) from exc


def _user_id_from(payload: dict) -> int:
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise _auth_error(
            ErrorCode.TOKEN_INVALID,
            "The access token does not carry a valid 'sub' user id.",
        ) from exc


def authenticate_request() -> int:
    """
    Runs the full check and sets flask.g.user_id.

    Kept apart from the decorator so tests can call it inside a
    test_request_context without wrapping a view.
    """
    g.user_id = _user_id_from(_decode(_bearer_token()))
    return g.user_id


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Failures raise AppError; the global error handler renders them.

        @bills_bp.route("/<int:bill_id>", methods=["GET"])
        @require_auth
        def get_bill(bill_id):
            ... g.user_id ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        authenticate_request()
        return f(*args, **kwargs)

    return decorated
