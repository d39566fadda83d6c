"""Tests for the replay store backends."""

import threading
from datetime import timedelta

from powgate.models.used_challenge import UsedChallenge
from powgate.services.replay_store import InMemoryReplayStore, ReplayStore
from powgate.services.sql_replay_store import SqlReplayStore, cleanup_expired_records
from tests.test_utils import FakeClock, utcnow


class RecordingStore(ReplayStore):
    """Minimal backend relying on the default claim()."""

    def __init__(self):
        self.used = {}

    def is_used(self, jti):
        return jti in self.used

    def mark_as_used(self, jti, expires_at):
        self.used[jti] = expires_at


class TestDefaultClaim:
    def test_claims_once(self):
        store = RecordingStore()
        assert store.claim("a", 100) is True
        assert store.claim("a", 100) is False
        assert store.used == {"a": 100}


class TestInMemoryReplayStore:
    def test_mark_and_check(self):
        store = InMemoryReplayStore()
        assert not store.is_used("jti-1")
        store.mark_as_used("jti-1", 2_000_000_000)
        assert store.is_used("jti-1")
        assert not store.is_used("jti-2")

    def test_claim_is_check_and_set(self):
        store = InMemoryReplayStore()
        assert store.claim("jti-1", 100)
        assert not store.claim("jti-1", 100)
        assert len(store) == 1

    def test_concurrent_claims_have_one_winner(self):
        store = InMemoryReplayStore()
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(store.claim("shared", 100))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1

    def test_purge_expired(self):
        clock = FakeClock(1_000)
        store = InMemoryReplayStore(clock=clock)
        store.mark_as_used("old", 999)
        store.mark_as_used("current", 1_000)
        store.mark_as_used("future", 2_000)

        assert store.purge_expired() == 1
        assert not store.is_used("old")
        assert store.is_used("current")
        assert store.is_used("future")

    def test_mark_never_shortens_lifetime(self):
        clock = FakeClock(1_000)
        store = InMemoryReplayStore(clock=clock)
        store.mark_as_used("jti", 5_000)
        store.mark_as_used("jti", 1_500)

        clock.now = 2_000
        store.purge_expired()
        assert store.is_used("jti")


class TestSqlReplayStore:
    def test_mark_and_check(self, db_session):
        store = SqlReplayStore(db_session)
        assert not store.is_used("jti-1")

        store.mark_as_used("jti-1", 2_000_000_000)

        assert store.is_used("jti-1")
        record = db_session.get(UsedChallenge, "jti-1")
        assert record.expires_at.year == 2033

    def test_claim_once(self, db_session):
        store = SqlReplayStore(db_session)
        assert store.claim("jti-1", 2_000_000_000)
        assert not store.claim("jti-1", 2_000_000_000)
        assert db_session.query(UsedChallenge).count() == 1

    def test_claim_survives_primary_key_collision(self, db_session):
        store = SqlReplayStore(db_session)
        db_session.add(UsedChallenge(jti="jti-1", expires_at=utcnow()))
        db_session.commit()
        db_session.expunge_all()

        # Simulate another process inserting between the check and the insert
        store.is_used = lambda jti: False
        assert store.claim("jti-1", 2_000_000_000) is False
        # Session is usable after the rollback
        assert store.claim("jti-2", 2_000_000_000) is True

    def test_mark_existing_extends_expiry(self, db_session):
        store = SqlReplayStore(db_session)
        store.mark_as_used("jti-1", 1_800_000_000)
        store.mark_as_used("jti-1", 1_900_000_000)
        store.mark_as_used("jti-1", 1_850_000_000)

        record = db_session.get(UsedChallenge, "jti-1")
        assert record.expires_at.year == 2030


class TestCleanupExpiredRecords:
    def test_deletes_only_expired(self, db_session):
        db_session.add(UsedChallenge(jti="expired", expires_at=utcnow() - timedelta(minutes=10)))
        db_session.add(UsedChallenge(jti="valid", expires_at=utcnow() + timedelta(minutes=10)))
        db_session.commit()

        deleted = cleanup_expired_records(db_session)

        assert deleted == 1
        remaining = {record.jti for record in db_session.query(UsedChallenge).all()}
        assert remaining == {"valid"}

    def test_nothing_to_delete(self, db_session):
        assert cleanup_expired_records(db_session) == 0


class TestCleanupJob:
    def test_job_deletes_expired_records(self, db_session, monkeypatch):
        from powgate import scheduler

        db_session.add(UsedChallenge(jti="expired", expires_at=utcnow() - timedelta(minutes=1)))
        db_session.commit()
        monkeypatch.setattr(scheduler, "SessionLocal", lambda: db_session)

        scheduler.cleanup_job()

        assert db_session.query(UsedChallenge).count() == 0
