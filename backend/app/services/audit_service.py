"""Activity logging service.

Appends ``ActivityLog`` rows for security-relevant actions (login, register,
ticket changes, status toggles, token validation).

By default the entry joins the caller's transaction: it is flushed, not
committed, and a failure propagates so the caller rolls everything back
together (the ticket reply relies on this). With ``commit=True`` the entry is
committed on its own and failures are only logged, for events where the
audit trail must never break the request.
"""

import json
import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.base import utcnow
from app.models.activity import ActivityLog

logger = logging.getLogger("audit")


def _render_details(details: Any) -> Optional[str]:
    if details is None or isinstance(details, str):
        return details
    return json.dumps(details, default=str)


def log_activity(
    db: Session,
    action: str,
    user_id: Optional[int] = None,
    details: Any = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    commit: bool = False,
) -> None:
    """Write an activity log entry.

    Args:
        db: Session the entry is written through.
        action: Short action name (``login``, ``ticket_replied``, ...).
        user_id: Acting user, if known.
        details: Free text, or a dict serialized to JSON.
        ip_address: Client address.
        user_agent: Client ``User-Agent`` header.
        commit: Commit immediately and swallow storage errors.
    """
    entry = ActivityLog(
        user_id=user_id,
        action=action,
        details=_render_details(details),
        ip_address=ip_address,
        user_agent=user_agent[:500] if user_agent else None,
        created_at=utcnow(),
    )
    logger.info(f"{action} user={user_id} ip={ip_address}")

    if not commit:
        db.add(entry)
        db.flush()
        return

    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        logger.exception(f"Failed to write activity log entry for {action}")
        db.rollback()
