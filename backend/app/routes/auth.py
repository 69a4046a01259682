"""
routes/auth.py — Authentication route handlers.

Layer rules:
  - Parse request body / cookie
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service function
  - Set or clear the refresh cookie
  - Return the standard response envelope: {"data": {...}, "warnings": []}

No business logic here. No DB queries. The auth service owns its own
transactions, so routes do not commit. AppError propagates to the global
error handler in app/__init__.py.

The refresh token travels only in an HttpOnly, SameSite=Strict cookie scoped
to /auth/refresh. Logout is therefore also exposed as DELETE /auth/refresh,
the one path the browser sends the cookie to.

Endpoints (url_prefix=/auth):
  POST   /auth/register  → 201
  POST   /auth/login     → 200
  POST   /auth/refresh   → 200
  POST   /auth/logout    → 200
  DELETE /auth/refresh   → 200
  GET    /auth/me        → 200
"""

from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, Response, current_app, g, jsonify, request
from marshmallow import ValidationError

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.auth_schema import LoginSchema, RefreshTokenSchema, RegisterSchema
from backend.app.services import auth_service

auth_bp = Blueprint("auth", __name__)


def _set_refresh_cookie(response: Response, refresh_token: str) -> Response:
    config = current_app.config
    response.set_cookie(
        config["REFRESH_COOKIE_NAME"],
        refresh_token,
        expires=datetime.now(timezone.utc) + config["JWT_REFRESH_TOKEN_EXPIRES"],
        path=config["REFRESH_COOKIE_PATH"],
        secure=config["REFRESH_COOKIE_SECURE"],
        httponly=True,
        samesite="Strict",
    )
    return response


def _clear_refresh_cookie(response: Response) -> Response:
    config = current_app.config
    response.delete_cookie(
        config["REFRESH_COOKIE_NAME"],
        path=config["REFRESH_COOKIE_PATH"],
        secure=config["REFRESH_COOKIE_SECURE"],
        httponly=True,
        samesite="Strict",
    )
    return response


def _raw_refresh_token() -> str | None:
    """
    Cookie first; JSON body field `refreshToken` as a fallback. A body token
    that is not a string counts as absent.
    """
    cookie = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    if cookie:
        return cookie
    try:
        data = RefreshTokenSchema().load(request.get_json(silent=True) or {})
    except ValidationError:
        return None
    return data["refresh_token"]


@auth_bp.route("/register", methods=["POST"])
def register():
    """POST /auth/register — Create account and log in. (No auth required.)"""
    data = RegisterSchema().load(request.get_json(silent=True) or {})
    result = auth_service.register_user(
        name=data["name"],
        email=data["email"],
        password=data["password"],
        session=db.session,
    )
    tokens = result["tokens"]
    response = jsonify({
        "data": {"user": result["user"], "accessToken": tokens.access_token},
        "warnings": [],
    })
    response.status_code = 201
    return _set_refresh_cookie(response, tokens.refresh_token)


@auth_bp.route("/login", methods=["POST"])
def login():
    """POST /auth/login — Authenticate; access token in body, refresh token in cookie."""
    data = LoginSchema().load(request.get_json(silent=True) or {})
    tokens = auth_service.login_user(
        email=data["email"],
        password=data["password"],
        session=db.session,
    )
    response = jsonify({
        "data": {
            "user": {"id": tokens.user_id, "email": data["email"]},
            "accessToken": tokens.access_token,
        },
        "warnings": [],
    })
    return _set_refresh_cookie(response, tokens.refresh_token)


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /auth/refresh — Rotate the refresh session; new access token + cookie."""
    tokens = auth_service.refresh_session(
        raw_refresh_token=_raw_refresh_token(),
        session=db.session,
    )
    response = jsonify({"data": {"accessToken": tokens.access_token}, "warnings": []})
    return _set_refresh_cookie(response, tokens.refresh_token)


@auth_bp.route("/logout", methods=["POST"])
@auth_bp.route("/refresh", methods=["DELETE"])
def logout():
    """Logout — delete the session and clear the cookie. Always 200."""
    auth_service.logout_session(
        raw_refresh_token=_raw_refresh_token(),
        session=db.session,
    )
    response = jsonify({"data": {"message": "Logged out successfully."}, "warnings": []})
    return _clear_refresh_cookie(response)


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /auth/me — Return current user profile. (Auth required.)"""
    result = auth_service.get_current_user(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
