"""
tests/integration/test_session_repository.py — SessionRepository against a
real (SQLite or TEST_DATABASE_URL) database.

Covers:
  - create / find_by_id snapshots
  - revoke: success, already revoked, not found
  - revoke_all_for_user with and without a spared session
  - delete and prune_expired
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from backend.app.repositories.session_repository import (
    SessionAlreadyRevoked,
    SessionNotFound,
    SessionRepository,
)
from backend.tests.conftest import make_user


def _new_session(repo, user_id, expires_in=timedelta(days=7), session_id=None):
    return repo.create(
        session_id=session_id or str(uuid.uuid4()),
        user_id=user_id,
        token_hash="hash-" + uuid.uuid4().hex,
        expires_at=datetime.now(timezone.utc) + expires_in,
    )


@pytest.fixture
def repo(session):
    return SessionRepository(session)


class TestCreateAndFind:

    def test_create_returns_active_record(self, repo, session, user):
        record = _new_session(repo, user["user_id"])
        session.commit()

        assert record.revoked is False
        assert record.is_active
        assert record.replaced_by is None
        assert record.revoked_at is None

    def test_find_by_id_returns_snapshot(self, repo, session, user):
        created = _new_session(repo, user["user_id"])
        session.commit()

        found = repo.find_by_id(created.session_id)

        assert found.session_id == created.session_id
        assert found.user_id == user["user_id"]
        assert found.token_hash == created.token_hash
        assert found.expires_at.tzinfo is not None

    def test_find_unknown_returns_none(self, repo):
        assert repo.find_by_id(str(uuid.uuid4())) is None

    def test_duplicate_session_id_is_rejected(self, repo, session, user):
        session_id = str(uuid.uuid4())
        _new_session(repo, user["user_id"], session_id=session_id)
        session.commit()
        session.expunge_all()

        with pytest.raises(IntegrityError):
            _new_session(repo, user["user_id"], session_id=session_id)
        session.rollback()


class TestRevoke:

    def test_revoke_marks_session_and_links_successor(self, repo, session, user):
        old = _new_session(repo, user["user_id"])
        new = _new_session(repo, user["user_id"])

        revoked = repo.revoke(old.session_id, replaced_by=new.session_id)
        session.commit()

        assert revoked.revoked is True
        assert revoked.replaced_by == new.session_id
        assert revoked.revoked_at is not None
        assert repo.find_by_id(new.session_id).is_active

    def test_second_revoke_raises_already_revoked_with_current_state(self, repo, session, user):
        old = _new_session(repo, user["user_id"])
        winner = _new_session(repo, user["user_id"])
        repo.revoke(old.session_id, replaced_by=winner.session_id)
        session.commit()

        with pytest.raises(SessionAlreadyRevoked) as exc_info:
            repo.revoke(old.session_id, replaced_by=str(uuid.uuid4()))

        assert exc_info.value.record.replaced_by == winner.session_id
        session.rollback()
        assert repo.find_by_id(old.session_id).replaced_by == winner.session_id

    def test_revoke_unknown_raises_not_found(self, repo):
        missing = str(uuid.uuid4())
        with pytest.raises(SessionNotFound) as exc_info:
            repo.revoke(missing)
        assert exc_info.value.session_id == missing


class TestRevokeAllForUser:

    def test_revokes_only_live_sessions_of_that_user(self, repo, session, user):
        other = make_user(session, email="bob@test.com")
        first = _new_session(repo, user["user_id"])
        second = _new_session(repo, user["user_id"])
        theirs = _new_session(repo, other["user_id"])
        repo.revoke(first.session_id)
        session.commit()

        count = repo.revoke_all_for_user(user["user_id"])
        session.commit()

        assert count == 1
        assert repo.find_by_id(second.session_id).revoked is True
        assert repo.find_by_id(theirs.session_id).is_active

    def test_containment_leaves_replaced_by_untouched(self, repo, session, user):
        old = _new_session(repo, user["user_id"])
        new = _new_session(repo, user["user_id"])
        repo.revoke(old.session_id, replaced_by=new.session_id)

        repo.revoke_all_for_user(user["user_id"])
        session.commit()

        assert repo.find_by_id(old.session_id).replaced_by == new.session_id
        assert repo.find_by_id(new.session_id).replaced_by is None

    def test_spared_session_stays_active(self, repo, session, user):
        keep = _new_session(repo, user["user_id"])
        drop = _new_session(repo, user["user_id"])

        count = repo.revoke_all_for_user(user["user_id"], except_session_id=keep.session_id)
        session.commit()

        assert count == 1
        assert repo.find_by_id(keep.session_id).is_active
        assert repo.find_by_id(drop.session_id).revoked is True

    def test_user_without_sessions_revokes_nothing(self, repo, session, user):
        assert repo.revoke_all_for_user(user["user_id"]) == 0


class TestDeleteAndPrune:

    def test_delete_removes_row(self, repo, session, user):
        record = _new_session(repo, user["user_id"])
        repo.delete(record.session_id)
        session.commit()

        assert repo.find_by_id(record.session_id) is None

    def test_delete_unknown_raises_not_found(self, repo):
        with pytest.raises(SessionNotFound):
            repo.delete(str(uuid.uuid4()))

    def test_prune_removes_only_expired_sessions(self, repo, session, user):
        expired = _new_session(repo, user["user_id"], expires_in=timedelta(minutes=-1))
        live = _new_session(repo, user["user_id"])
        session.commit()

        removed = repo.prune_expired()
        session.commit()

        assert removed == 1
        assert repo.find_by_id(expired.session_id) is None
        assert repo.find_by_id(live.session_id) is not None
