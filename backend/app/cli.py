"""
cli.py — Maintenance commands, registered on the Flask CLI.

    flask --app "backend.app:create_app()" sessions prune

Run from cron or a scheduled job. Expired sessions can be deleted at any time
without weakening reuse detection: their refresh tokens are expired too and
are rejected before the store is consulted.
"""

from __future__ import annotations

import click
from flask import current_app
from flask.cli import AppGroup
from sqlalchemy.exc import SQLAlchemyError

from backend.app.extensions import db
from backend.app.repositories.session_repository import SessionRepository

sessions_cli = AppGroup("sessions", help="Manage refresh sessions.")


@sessions_cli.command("prune")
def prune_command() -> None:
    """Delete refresh sessions whose expiry has passed."""
    try:
        removed = SessionRepository(db.session).prune_expired()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("Pruning expired sessions failed: %s", exc)
        raise click.ClickException("Pruning failed; see the application log.") from exc

    current_app.logger.info("Pruned %d expired refresh session(s)", removed)
    click.echo(f"Pruned {removed} expired session(s).")
