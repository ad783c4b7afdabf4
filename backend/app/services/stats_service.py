"""Dashboard statistics for the staff panel."""

from datetime import timedelta
from typing import Any, Dict

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from app.db.base import utcnow
from app.models.activity import ActivityLog
from app.models.ticket import ACTIVE_STATUSES, RESOLVED_STATUSES, SupportTicket, TicketPriority, TicketStatus
from app.models.user import ACCOUNT_ACTIVE, ACCOUNT_INACTIVE, User


def _count_if(condition):
    return func.sum(case((condition, 1), else_=0))


class StatsService:
    def __init__(self, db: Session):
        self.db = db

    def ticket_stats(self) -> Dict[str, Any]:
        priorities = [p.value for p in TicketPriority]
        row = self.db.execute(
            select(
                func.count(SupportTicket.id),
                _count_if(SupportTicket.status.in_(ACTIVE_STATUSES)),
                _count_if(SupportTicket.status.in_(RESOLVED_STATUSES)),
                _count_if(SupportTicket.status == TicketStatus.OPEN.value),
                _count_if(SupportTicket.status == TicketStatus.IN_PROGRESS.value),
                *[_count_if(SupportTicket.priority == p) for p in priorities],
            )
        ).one()
        values = [int(v or 0) for v in row]
        return {
            "total": values[0],
            "pending": values[1],
            "resolved": values[2],
            "open": values[3],
            "in_progress": values[4],
            "by_priority": dict(zip(priorities, values[5:])),
        }

    def user_stats(self) -> Dict[str, Any]:
        since = utcnow() - timedelta(days=30)
        row = self.db.execute(
            select(
                func.count(User.id),
                _count_if(User.status == ACCOUNT_ACTIVE),
                _count_if(User.status == ACCOUNT_INACTIVE),
                _count_if(User.email_verified.is_(True)),
                _count_if(User.created_at >= since),
            )
        ).one()
        total, active, inactive, verified, new_30 = (int(v or 0) for v in row)
        return {
            "total": total,
            "active": active,
            "inactive": inactive,
            "verified": verified,
            "new_30_days": new_30,
        }

    def activity_stats(self) -> Dict[str, int]:
        now = utcnow()
        row = self.db.execute(
            select(
                func.count(ActivityLog.id),
                _count_if(ActivityLog.created_at >= now - timedelta(hours=24)),
                _count_if(ActivityLog.created_at >= now - timedelta(days=7)),
            )
        ).one()
        total, last_24h, last_7d = (int(v or 0) for v in row)
        return {"total": total, "last_24h": last_24h, "last_7d": last_7d}

    def ticket_trend(self, days: int = 7) -> list:
        """Tickets created per calendar day over the last ``days`` days, oldest first."""
        day = func.date(SupportTicket.created_at)
        rows = self.db.execute(
            select(day.label("day"), func.count(SupportTicket.id))
            .where(SupportTicket.created_at >= utcnow() - timedelta(days=days))
            .group_by(day)
            .order_by(day)
        ).all()
        return [{"date": str(d), "count": int(c)} for d, c in rows]

    def dashboard(self) -> Dict[str, Any]:
        tickets = self.ticket_stats()
        users = self.user_stats()
        return {
            "tickets": tickets,
            "users": users,
            "activity": self.activity_stats(),
            "trends": {"tickets_7d": self.ticket_trend()},
            # Flat totals for the dashboard cards
            "totalTickets": tickets["total"],
            "pendingTickets": tickets["pending"],
            "resolvedTickets": tickets["resolved"],
            "totalUsers": users["total"],
        }
