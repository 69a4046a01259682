"""
repositories/session_repository.py — Data access for refresh sessions.

The only module that reads or writes the refresh_sessions table. Every method
returns an immutable SessionRecord snapshot (never a live ORM row), so callers
cannot mutate a session behind the repository's back.

Transactions:
  Methods flush inside the caller's SQLAlchemy session and never commit.
  The session lifecycle (services/auth_service.py) owns commit and rollback.

Concurrency:
  revoke() is a single conditional UPDATE guarded by `revoked = false`.
  When two transactions race to revoke the same session, the database row
  lock serialises them and exactly one UPDATE matches; the other raises
  SessionAlreadyRevoked. The existence check happens in the same statement,
  so a missing row fails loudly instead of silently doing nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from backend.app.models.refresh_session import RefreshSession


class SessionNotFound(LookupError):

    def __init__(self, session_id: str) -> None:
        super().__init__(f"refresh session {session_id} not found")
        self.session_id = session_id


class SessionAlreadyRevoked(Exception):
    """Another transaction revoked the session first. Carries its current state."""

    def __init__(self, record: "SessionRecord") -> None:
        super().__init__(f"refresh session {record.session_id} already revoked")
        self.record = record


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for DateTime(timezone=True).
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    user_id: str
    token_hash: str
    revoked: bool
    replaced_by: str | None
    created_at: datetime
    expires_at: datetime
    revoked_at: datetime | None

    @classmethod
    def from_model(cls, row: RefreshSession) -> "SessionRecord":
        return cls(
            session_id=row.session_id,
            user_id=row.user_id,
            token_hash=row.token_hash,
            revoked=bool(row.revoked),
            replaced_by=row.replaced_by,
            created_at=_as_utc(row.created_at),
            expires_at=_as_utc(row.expires_at),
            revoked_at=_as_utc(row.revoked_at),
        )

    @property
    def is_active(self) -> bool:
        return not self.revoked


class SessionRepository:

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(
            self,
            session_id: str,
            user_id: str,
            token_hash: str,
            expires_at: datetime,
    ) -> SessionRecord:
        """
        Inserts a new active session and returns it.

        The primary key doubles as the uniqueness check: a duplicate
        session_id raises IntegrityError at flush time.
        """
        row = RefreshSession(
            session_id=session_id,
            user_id=user_id,
            token_hash=token_hash,
            revoked=False,
            replaced_by=None,
            created_at=_utcnow(),
            expires_at=expires_at,
            revoked_at=None,
        )
        self.session.add(row)
        self.session.flush()
        return SessionRecord.from_model(row)

    def find_by_id(self, session_id: str) -> SessionRecord | None:
        row = self._load(session_id)
        return SessionRecord.from_model(row) if row is not None else None

    def revoke(
            self,
            session_id: str,
            replaced_by: str | None = None,
    ) -> SessionRecord:
        """
        Marks an active session revoked.

        Raises:
          SessionNotFound        — no row with this session_id.
          SessionAlreadyRevoked  — the row exists but is already revoked.
        """
        result = self.session.execute(
            update(RefreshSession)
            .where(
                RefreshSession.session_id == session_id,
                RefreshSession.revoked.is_(False),
            )
            .values(
                revoked=True,
                replaced_by=replaced_by,
                revoked_at=_utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        row = self._load(session_id)
        if row is None:
            raise SessionNotFound(session_id)

        record = SessionRecord.from_model(row)
        if result.rowcount == 0:
            raise SessionAlreadyRevoked(record)
        return record

    def revoke_all_for_user(
            self,
            user_id: str,
            except_session_id: str | None = None,
    ) -> int:
        """
        Revokes every active session owned by `user_id`, optionally sparing
        one. replaced_by stays NULL: this is containment, not rotation.

        Returns the number of sessions revoked.
        """
        stmt = (
            update(RefreshSession)
            .where(
                RefreshSession.user_id == user_id,
                RefreshSession.revoked.is_(False),
            )
            .values(revoked=True, revoked_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        if except_session_id is not None:
            stmt = stmt.where(RefreshSession.session_id != except_session_id)

        return self.session.execute(stmt).rowcount

    def delete(self, session_id: str) -> None:
        """Physically removes a session. Raises SessionNotFound if absent."""
        result = self.session.execute(
            delete(RefreshSession)
            .where(RefreshSession.session_id == session_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise SessionNotFound(session_id)

    def prune_expired(self, now: datetime | None = None) -> int:
        """
        Deletes sessions whose expires_at has passed. Returns the row count.

        A pruned session's refresh token is itself expired, so it fails
        verification before any lookup and can never be mistaken for reuse.
        """
        result = self.session.execute(
            delete(RefreshSession)
            .where(RefreshSession.expires_at <= (now or _utcnow()))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _load(self, session_id: str) -> RefreshSession | None:
        # populate_existing: bulk UPDATEs bypass the identity map.
        return self.session.execute(
            select(RefreshSession)
            .where(RefreshSession.session_id == session_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
