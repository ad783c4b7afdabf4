"""Rate limiting.

Two layers:

- ``limiter``: slowapi per-IP request ceiling, applied with
  ``@limiter.limit(...)`` on public and authentication routes.
- ``LoginAttemptLimiter``: database-backed sliding window of failed attempts
  per (identifier, action), used for login lockout and for throttling
  registration and the contact form.
"""

import logging
from datetime import timedelta
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings, settings
from app.db.base import utcnow
from app.models.activity import LoginAttempt

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


class LoginAttemptLimiter:
    """Windowed failed-attempt counter backed by the ``login_attempts`` table.

    Fails open: if the store cannot be read, ``allow`` returns True and the
    error is logged.
    """

    def __init__(self, db: Session, max_attempts: int = 5, window_seconds: int = 900):
        self.db = db
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds

    @classmethod
    def from_settings(cls, db: Session, settings: Settings) -> "LoginAttemptLimiter":
        return cls(db, max_attempts=settings.max_login_attempts, window_seconds=settings.lockout_time)

    def _key_filter(self, identifier: str, action: str):
        return (LoginAttempt.identifier == identifier) & (LoginAttempt.action == action)

    def failure_count(self, identifier: str, action: str) -> int:
        """Purge expired rows, then count the remaining failures for the key."""
        cutoff = utcnow() - timedelta(seconds=self.window_seconds)
        self.db.execute(delete(LoginAttempt).where(LoginAttempt.attempt_time < cutoff))
        count = self.db.scalar(
            select(func.count(LoginAttempt.id)).where(self._key_filter(identifier, action))
        )
        self.db.commit()
        return count or 0

    def allow(self, identifier: str, action: str = "login") -> bool:
        try:
            return self.failure_count(identifier, action) < self.max_attempts
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Rate limit check failed for {action}, allowing request: {e}")
            return True

    def record(self, identifier: str, action: str = "login", success: bool = False) -> None:
        """Clear the key on success, append one failure row otherwise."""
        try:
            if success:
                self.db.execute(delete(LoginAttempt).where(self._key_filter(identifier, action)))
            else:
                self.db.add(LoginAttempt(identifier=identifier, action=action, attempt_time=utcnow()))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record {action} attempt: {e}")


def client_ip(request, trust_forwarded: Optional[bool] = None) -> str:
    """Client address for logging and IP-keyed limits.

    ``X-Forwarded-For`` is client-controlled, so it is only read when
    ``trust_forwarded_for`` is enabled. Otherwise the socket peer is used,
    the same key slowapi's ``get_remote_address`` gives.
    """
    if trust_forwarded is None:
        trust_forwarded = settings.trust_forwarded_for
    if trust_forwarded:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return get_remote_address(request)
