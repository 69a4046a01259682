"""
models/refresh_session.py — RefreshSession table definition.

One row per issued refresh token. Rows form lineage chains through
replaced_by: each successful refresh inserts a new row and points the old one
at it.

Invariants (enforced by repositories/session_repository.py, which is the only
writer of this table):
  - token_hash never changes after insert.
  - revoked never goes from TRUE back to FALSE.
  - replaced_by is set only when the row was revoked by rotation.

FK policy: user_id ON DELETE CASCADE — sessions are owned by the user.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, false, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class RefreshSession(db.Model):
    __tablename__ = "refresh_sessions"

    # Embedded in the refresh token payload as `session_id`; lookups are keyed
    # on it directly instead of scanning a user's tokens.
    session_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # bcrypt digest of the raw refresh token, never the token itself.
    token_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    revoked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    # Successor session when revoked by rotation. No FK: the successor may be
    # deleted by logout while this row is kept for reuse detection.
    replaced_by: Mapped[str | None] = mapped_column(
        String(36),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Never earlier than the refresh JWT's exp claim; prune_expired relies on it.
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="refresh_sessions",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<RefreshSession session_id={self.session_id} "
            f"user_id={self.user_id} "
            f"revoked={self.revoked}>"
        )
