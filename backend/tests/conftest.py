"""
tests/conftest.py — Fixtures shared by the unit and integration suites.

Design:
  - Each test gets a fresh app built with create_app("testing"), which points
    at in-memory SQLite unless TEST_DATABASE_URL says otherwise.
  - The app context stays pushed for the whole test, so service functions can
    be called directly and Flask test-client requests reuse the same
    db.session.
  - Tables are created before and dropped after every test.

Helpers (not fixtures) live at the bottom so tests can call them with
arbitrary arguments.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from backend.app import create_app
from backend.app.extensions import db as _db
from backend.app.models.user import User
from backend.app.services.secret_hasher import hash_secret


# ═══════════════════════════════════════════════════════════════════════════
# App / DB fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app():
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()
        yield flask_app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def session(app):
    """The request-scoped SQLAlchemy session the services operate on."""
    return _db.session


@pytest.fixture
def client(app):
    """Flask test client with a cookie jar."""
    return app.test_client()


@pytest.fixture
def bare_client(app):
    """Flask test client without a cookie jar; tokens are sent explicitly."""
    return app.test_client(use_cookies=False)


@pytest.fixture
def user(session) -> dict:
    return make_user(session, email="alice@test.com")


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

DEFAULT_PASSWORD = "Password1"


def make_user(
    session,
    email: str,
    password: str = DEFAULT_PASSWORD,
    name: str = "Test User",
) -> dict:
    """
    Inserts a user directly and returns its credentials.
    Returns: {"user_id": "...", "email": "...", "password": "..."}
    """
    row = User(
        user_id=str(uuid.uuid4()),
        name=name,
        email=email,
        password_hash=hash_secret(password, rounds=4),
        created_at=datetime.now(timezone.utc),
    )
    session.add(row)
    session.commit()
    return {"user_id": row.user_id, "email": email, "password": password}


def refresh_cookie_header(response) -> str:
    """Returns the Set-Cookie header for the refresh token."""
    for header in response.headers.getlist("Set-Cookie"):
        if header.startswith("refreshToken="):
            return header
    raise AssertionError(f"no refreshToken cookie in {response.headers!r}")


def refresh_cookie_value(response) -> str:
    return refresh_cookie_header(response).split(";", 1)[0].split("=", 1)[1]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}
