from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.db.models.auth_attempt import AuthAttempt


@dataclass(frozen=True)
class AttemptWindow:
    limit: int
    minutes: int

    @property
    def retry_after_seconds(self) -> int:
        return self.minutes * 60


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _attempts(db: Session, username: str, action: str):
    return db.query(AuthAttempt).filter(AuthAttempt.username == username, AuthAttempt.action == action)


def count_recent_attempts(db: Session, username: str, action: str, window: AttemptWindow) -> int:
    since = _utc_now() - timedelta(minutes=window.minutes)
    return _attempts(db, username, action).filter(AuthAttempt.created_at >= since).count()


def check_rate_limit(db: Session, username: str, action: str, window: AttemptWindow) -> None:
    if count_recent_attempts(db, username, action, window) >= window.limit:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Try again later.",
            headers={"Retry-After": str(window.retry_after_seconds)},
        )


def record_attempt(db: Session, username: str, action: str) -> None:
    db.add(AuthAttempt(username=username, action=action, created_at=_utc_now()))
    db.commit()


def clear_attempts(db: Session, username: str, action: str) -> None:
    """Forget failed attempts once the user signs in successfully."""
    _attempts(db, username, action).delete()
    db.commit()
