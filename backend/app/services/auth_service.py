"""
services/auth_service.py — Authentication and the refresh-session lifecycle.

Responsibilities:
  - User registration and credential validation
  - Login: issue an access + refresh token pair and persist the session
  - Refresh: rotate the session, detecting reuse of rotated-out tokens
  - Logout: delete the session, idempotently and without ever failing

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes
  - current_app is used ONLY to read token/hash config and to log

Transactions:
  Unlike the other services, this module commits and rolls back itself.
  Reuse containment (revoking every session of a user) must persist even
  though the request then fails with SecurityTokenReused, and a login must
  not hand out tokens for a session that was never stored.

Refresh state machine (per session row):
  Active ──refresh──▶ RotatedOut (revoked, replaced_by = successor)
  Active ──containment──▶ Revoked (revoked, replaced_by NULL)
  any ──logout──▶ Deleted
  Presenting a token whose row is RotatedOut, Revoked, Deleted, or was never
  stored is treated as theft: every live session of the user is revoked.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.errors import (
    AppError,
    ErrorCode,
    InvalidCredentials,
    InvalidRefreshToken,
    SecurityTokenReused,
    SessionPersistError,
    TokenMissing,
)
from backend.app.models.user import User
from backend.app.repositories.session_repository import (
    SessionAlreadyRevoked,
    SessionNotFound,
    SessionRecord,
    SessionRepository,
)
from backend.app.services.secret_hasher import compare_secret, hash_secret
from backend.app.services.token_codec import TokenCodec, TokenVerificationError


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    session_id: str
    user_id: str


# ── Private helpers ────────────────────────────────────────────────────────

def _codec() -> TokenCodec:
    return TokenCodec.from_config(current_app.config)


def _rounds() -> int:
    return current_app.config.get("BCRYPT_LOG_ROUNDS", 10)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": user.user_id,
        "name": user.name,
        "email": user.email,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _issue_session(
        user_id: str,
        email: str,
        repo: SessionRepository,
) -> TokenPair:
    """
    Issues a new token pair and inserts its session row (flush only).

    expires_at is derived from the same instant as the JWT exp claim, so the
    stored expiry is never earlier than the token's.
    """
    codec = _codec()
    now = _utcnow()
    session_id = str(uuid.uuid4())

    access_token = codec.issue_access_token(
        {"user_id": user_id, "email": email},
        issued_at=now,
    )
    refresh_token = codec.issue_refresh_token(
        {"user_id": user_id, "email": email, "session_id": session_id},
        issued_at=now,
    )

    repo.create(
        session_id=session_id,
        user_id=user_id,
        token_hash=hash_secret(refresh_token, rounds=_rounds()),
        expires_at=now + codec.refresh_ttl,
    )

    return TokenPair(
        access_token=access_token,
        refresh_token=refresh_token,
        session_id=session_id,
        user_id=user_id,
    )


def _contain_reuse(
        session: Session,
        user_id: str,
        session_id: str,
        reason: str,
        spare_session_id: str | None = None,
        also_user_id: str | None = None,
) -> SecurityTokenReused:
    """
    Revokes every live session of `user_id` (except `spare_session_id`) and
    of `also_user_id` when given, then commits. Returns the error for the
    caller to raise.

    Runs exactly once per detection. A store failure here is reported as
    SessionPersistError and not retried.
    """
    repo = SessionRepository(session)
    try:
        revoked = repo.revoke_all_for_user(user_id, except_session_id=spare_session_id)
        if also_user_id is not None and also_user_id != user_id:
            revoked += repo.revoke_all_for_user(also_user_id)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        current_app.logger.critical(
            "Refresh token reuse detected (%s) for user %s, session %s, "
            "but revoking the user's sessions failed: %s",
            reason, user_id, session_id, exc,
        )
        raise SessionPersistError() from exc

    current_app.logger.error(
        "Refresh token reuse detected (%s) for user %s, session %s; "
        "revoked %d live session(s).",
        reason, user_id, session_id, revoked,
    )
    return SecurityTokenReused()


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        name: str,
        email: str,
        password: str,
        session: Session,
) -> dict:
    """
    Creates a new user account, then logs it in.

    Raises:
      AppError(DUPLICATE_EMAIL, 409) — email already registered
      SessionPersistError           — the store failed

    Returns: {"user": {...}, "tokens": TokenPair}
    """
    existing = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    user = User(
        user_id=str(uuid.uuid4()),
        name=name,
        email=email,
        password_hash=hash_secret(password, rounds=_rounds()),
        created_at=_utcnow(),
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError as exc:
        # Lost a race against a concurrent registration of the same email.
        session.rollback()
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        ) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        raise SessionPersistError() from exc

    current_app.logger.info("Registered user %s", user.user_id)

    return {
        "user": _build_user_dict(user),
        "tokens": login_user(email=email, password=password, session=session),
    }


def login_user(
        email: str,
        password: str,
        session: Session,
) -> TokenPair:
    """
    Validates credentials and starts a new session chain.

    The pair is returned only after the session row is committed; tokens for
    an unpersisted session never leave this function.

    Raises:
      InvalidCredentials  — unknown email or wrong password (same error).
      SessionPersistError — the session could not be stored.
    """
    user = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()

    if user is None or not compare_secret(password, user.password_hash):
        raise InvalidCredentials()

    repo = SessionRepository(session)
    try:
        pair = _issue_session(user.user_id, user.email, repo)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        current_app.logger.error("Login for user %s failed to persist session: %s", user.user_id, exc)
        raise SessionPersistError() from exc

    current_app.logger.info("User %s logged in, session %s", user.user_id, pair.session_id)
    return pair


def refresh_session(
        raw_refresh_token: str | None,
        session: Session,
) -> TokenPair:
    """
    Exchanges a refresh token for a new pair and rotates its session.

    Raises:
      TokenMissing         — no token supplied.
      InvalidRefreshToken  — signature, structure, or expiry failure.
      SecurityTokenReused  — session unknown, revoked, or hash mismatch;
                             every other live session of the user is revoked.
      SessionPersistError  — the store failed; safe to retry the call.
    """
    if not raw_refresh_token:
        raise TokenMissing()

    try:
        claims = _codec().verify_refresh_token(raw_refresh_token)
    except TokenVerificationError as exc:
        raise InvalidRefreshToken() from exc

    user_id = str(claims["user_id"])
    email = claims["email"]
    session_id = str(claims["session_id"])

    repo = SessionRepository(session)
    try:
        record = repo.find_by_id(session_id)
    except SQLAlchemyError as exc:
        session.rollback()
        raise SessionPersistError() from exc

    if record is None:
        raise _contain_reuse(session, user_id, session_id, "unknown session")

    if record.revoked:
        raise _contain_reuse(session, user_id, session_id, "revoked session")

    if record.user_id != user_id:
        # Contain the claimant and the row's owner.
        raise _contain_reuse(
            session, user_id, session_id, "session owner mismatch",
            also_user_id=record.user_id,
        )

    if not compare_secret(raw_refresh_token, record.token_hash):
        raise _contain_reuse(session, user_id, session_id, "token hash mismatch")

    return _rotate(session, repo, record, email)


def _rotate(
        session: Session,
        repo: SessionRepository,
        record: SessionRecord,
        email: str,
) -> TokenPair:
    """
    Inserts the successor session, then revokes `record` pointing at it, in
    one transaction. The successor is written first so a failure between the
    two steps can never leave the old token live.
    """
    try:
        pair = _issue_session(record.user_id, email, repo)
        repo.revoke(record.session_id, replaced_by=pair.session_id)
        session.commit()
    except SessionAlreadyRevoked as exc:
        # A concurrent refresh with the same token committed first. Our
        # successor row is discarded; the winner's successor stays live.
        session.rollback()
        raise _contain_reuse(
            session,
            record.user_id,
            record.session_id,
            "concurrent replay",
            spare_session_id=exc.record.replaced_by,
        ) from exc
    except SessionNotFound as exc:
        # Deleted by a concurrent logout.
        session.rollback()
        raise _contain_reuse(
            session, record.user_id, record.session_id, "session deleted during refresh",
        ) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        current_app.logger.error(
            "Refresh for session %s failed to persist rotation: %s", record.session_id, exc,
        )
        raise SessionPersistError() from exc

    current_app.logger.info(
        "Rotated session %s -> %s for user %s",
        record.session_id, pair.session_id, record.user_id,
    )
    return pair


def logout_session(
        raw_refresh_token: str | None,
        session: Session,
) -> None:
    """
    Deletes the session behind a refresh token. Always succeeds.

    Missing, malformed, expired, or already-deleted tokens are treated as
    already logged out. Store failures are logged and swallowed so the client
    can always clear its local state.
    """
    if not raw_refresh_token:
        return

    try:
        claims = _codec().verify_refresh_token(raw_refresh_token)
    except TokenVerificationError:
        return

    session_id = str(claims["session_id"])
    try:
        SessionRepository(session).delete(session_id)
        session.commit()
    except SessionNotFound:
        return
    except SQLAlchemyError as exc:
        session.rollback()
        current_app.logger.warning("Logout could not delete session %s: %s", session_id, exc)
        return

    current_app.logger.info("Session %s logged out", session_id)


def get_current_user(user_id: str, session: Session) -> dict:
    """
    Returns the profile of the currently authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404) — user deleted after the token was issued.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return _build_user_dict(user)
