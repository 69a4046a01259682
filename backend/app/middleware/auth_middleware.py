"""
middleware/auth_middleware.py — Access-token authentication decorator.

The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Verifies the access JWT (signature, expiry, type) via TokenCodec
  3. Attaches user_id and email to flask.g for the duration of the request
  4. Raises the appropriate 401 AppError if any step fails

Access tokens are never looked up in the database; validity is signature plus
expiry only. Refresh tokens are rejected here because they are signed with the
refresh secret.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, invalid signature, or bad payload
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode
from backend.app.services.token_codec import TokenCodec, TokenExpired, TokenVerificationError


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces access-token authentication.

    Usage:
        @auth_bp.route("/me")
        @require_auth
        def me():
            user_id = g.user_id
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """
    Performs the full authentication sequence and sets flask.g.user_id.

    Raises AppError on any failure; the global error handler renders it.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    codec = TokenCodec.from_config(current_app.config)
    try:
        payload = codec.verify_access_token(parts[1])
    except TokenExpired:
        # Client should call POST /auth/refresh.
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Use POST /auth/refresh to obtain a new one.",
            401,
        )
    except TokenVerificationError:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    g.user_id = str(payload["user_id"])
    g.email = payload["email"]
