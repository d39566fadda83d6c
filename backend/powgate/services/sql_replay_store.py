from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from powgate.models.used_challenge import UsedChallenge
from powgate.services.replay_store import ReplayStore


def _to_datetime(epoch_seconds: int) -> datetime:
    """Epoch seconds to naive UTC, the convention of every DateTime column."""
    return datetime.fromtimestamp(epoch_seconds, UTC).replace(tzinfo=None)


class SqlReplayStore(ReplayStore):
    """
    Replay store backed by the used_challenges table.

    claim() is atomic: concurrent inserts of the same jti collide on the
    primary key and exactly one commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def is_used(self, jti: str) -> bool:
        return self.db.get(UsedChallenge, jti) is not None

    def mark_as_used(self, jti: str, expires_at: int) -> None:
        record = self.db.get(UsedChallenge, jti)
        if record is None:
            self.db.add(UsedChallenge(jti=jti, expires_at=_to_datetime(expires_at)))
        else:
            record.expires_at = max(record.expires_at, _to_datetime(expires_at))
        self.db.commit()

    def claim(self, jti: str, expires_at: int) -> bool:
        if self.is_used(jti):
            return False
        self.db.add(UsedChallenge(jti=jti, expires_at=_to_datetime(expires_at)))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True


def cleanup_expired_records(db: Session) -> int:
    """Delete replay records whose challenge has expired. Returns count of deleted rows."""
    result = (
        db.query(UsedChallenge)
        .filter(UsedChallenge.expires_at < datetime.now(UTC).replace(tzinfo=None))
        .delete()
    )
    db.commit()
    return result
