"""Support ticket models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, utcnow
from app.models.user import User


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketCategory(str, Enum):
    TECHNICAL = "technical"
    BILLING = "billing"
    HOSTING = "hosting"
    MARKETING = "marketing"
    GENERAL = "general"


# Statuses for which resolved_at must be set
RESOLVED_STATUSES = frozenset({TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value})
ACTIVE_STATUSES = frozenset({TicketStatus.OPEN.value, TicketStatus.IN_PROGRESS.value})

# Lower rank sorts first
PRIORITY_RANK = {
    TicketPriority.URGENT.value: 1,
    TicketPriority.HIGH.value: 2,
    TicketPriority.MEDIUM.value: 3,
    TicketPriority.LOW.value: 4,
}


class SupportTicket(Base, TimestampMixin):
    """Support ticket filed by a customer."""

    __tablename__ = "support_tickets"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)

    category: Mapped[str] = mapped_column(String(50), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default=TicketPriority.MEDIUM.value, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=TicketStatus.OPEN.value, nullable=False)

    assigned_to: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[User] = relationship(foreign_keys=[user_id])
    assignee: Mapped[Optional[User]] = relationship(foreign_keys=[assigned_to])
    messages: Mapped[List["TicketMessage"]] = relationship(
        back_populates="ticket",
        order_by="TicketMessage.created_at",
    )

    __table_args__ = (
        Index("idx_support_tickets_status", "status"),
        Index("idx_support_tickets_priority", "priority"),
    )


class TicketMessage(Base):
    """Message in a ticket thread. Append-only."""

    __tablename__ = "support_ticket_messages"

    id: Mapped[int] = mapped_column(primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("support_tickets.id"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    ticket: Mapped[SupportTicket] = relationship(back_populates="messages")
    author: Mapped[User] = relationship()
