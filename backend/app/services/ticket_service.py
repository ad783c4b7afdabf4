"""
Ticket Service

Support ticket lifecycle: customer creation, staff replies and status
changes, listing and thread views. Every status change goes through
``apply_status`` so ``resolved_at`` stays consistent with ``status``.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.exceptions import NotFoundError, StorageError, ValidationError
from app.core.rbac_policy import RBACPolicy
from app.core.responses import format_datetime
from app.core.sanitize import sanitize_text
from app.db.base import utcnow
from app.models.ticket import (
    PRIORITY_RANK,
    RESOLVED_STATUSES,
    SupportTicket,
    TicketCategory,
    TicketMessage,
    TicketPriority,
    TicketStatus,
)
from app.services.audit_service import log_activity

logger = logging.getLogger(__name__)

VALID_STATUSES = [s.value for s in TicketStatus]
VALID_PRIORITIES = [p.value for p in TicketPriority]
VALID_CATEGORIES = [c.value for c in TicketCategory]


def _require_choice(value: Optional[str], allowed: Iterable[str], message: str) -> str:
    if value not in allowed:
        raise ValidationError(message)
    return value


def apply_status(ticket: SupportTicket, new_status: str, now: Optional[datetime] = None) -> None:
    """Move ``ticket`` to ``new_status`` keeping ``resolved_at`` in step.

    Entering resolved/closed from an active state stamps ``resolved_at``;
    leaving resolved/closed clears it; moving between resolved and closed
    keeps the original stamp.
    """
    was_resolved = ticket.status in RESOLVED_STATUSES
    is_resolved = new_status in RESOLVED_STATUSES

    if is_resolved and not was_resolved:
        ticket.resolved_at = now or utcnow()
    elif was_resolved and not is_resolved:
        ticket.resolved_at = None
    elif is_resolved and ticket.resolved_at is None:
        ticket.resolved_at = now or utcnow()

    ticket.status = new_status


class TicketService:
    """Ticket workflow bound to one request's session."""

    def __init__(self, db: Session):
        self.db = db

    # ========== CUSTOMER OPERATIONS ==========

    def create_ticket(
        self,
        user_id: int,
        category: str,
        priority: str,
        title: str,
        message: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create an ``open`` ticket for ``user_id``."""
        _require_choice(priority, VALID_PRIORITIES, "Invalid priority level")
        _require_choice(category, VALID_CATEGORIES, "Invalid subject category")
        if not title.strip() or not message.strip():
            raise ValidationError("Title and message are required")

        ticket = SupportTicket(
            user_id=user_id,
            category=category,
            subject=sanitize_text(title, SupportTicket.subject.type.length, "Title"),
            description=sanitize_text(message),
            priority=priority,
            status=TicketStatus.OPEN.value,
        )
        try:
            self.db.add(ticket)
            self.db.flush()
            log_activity(
                self.db, "ticket_created", user_id=user_id,
                details=f"Support ticket #{ticket.id} created",
                ip_address=ip_address, user_agent=user_agent,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("An error occurred while creating the ticket", detail=e)

        return {
            "ticket_id": ticket.id,
            "subject": ticket.subject,
            "priority": ticket.priority,
            "status": ticket.status,
            "created_at": format_datetime(ticket.created_at),
        }

    def get_user_tickets(self, user_id: int) -> List[Dict[str, Any]]:
        """The caller's tickets, newest first."""
        tickets = self.db.scalars(
            select(SupportTicket)
            .where(SupportTicket.user_id == user_id)
            .order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc())
        ).all()
        return [self._ticket_summary(t) for t in tickets]

    def get_user_ticket(self, user_id: int, ticket_id: int) -> Dict[str, Any]:
        """One of the caller's own tickets with its public thread.

        Another user's ticket is reported as not found.
        """
        ticket = self.db.get(SupportTicket, ticket_id)
        if ticket is None or ticket.user_id != user_id:
            raise NotFoundError("Ticket not found")

        data = self._ticket_summary(ticket)
        data["messages"] = self._thread(ticket, include_internal=False)
        return data

    # ========== STAFF OPERATIONS ==========

    def list_tickets(self, status: Optional[str] = None, priority: Optional[str] = None) -> List[Dict[str, Any]]:
        """All tickets by priority rank, then newest first.

        Status and priority filters only narrow the ordered list.
        """
        if status is not None:
            _require_choice(status, VALID_STATUSES, "Invalid status")
        if priority is not None:
            _require_choice(priority, VALID_PRIORITIES, "Invalid priority level")

        rank = case(PRIORITY_RANK, value=SupportTicket.priority, else_=len(PRIORITY_RANK) + 1)
        stmt = (
            select(SupportTicket)
            .options(selectinload(SupportTicket.user), selectinload(SupportTicket.assignee))
            .order_by(rank, SupportTicket.created_at.desc(), SupportTicket.id.desc())
        )
        if status is not None:
            stmt = stmt.where(SupportTicket.status == status)
        if priority is not None:
            stmt = stmt.where(SupportTicket.priority == priority)

        return [self._staff_summary(t) for t in self.db.scalars(stmt).all()]

    def get_ticket_details(self, ticket_id: int) -> Dict[str, Any]:
        """Ticket with requester contact fields, assignee and full thread."""
        ticket = self.db.get(SupportTicket, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found")

        data = self._staff_summary(ticket)
        data.update({
            "user_phone": ticket.user.phone,
            "user_company": ticket.user.company,
            "messages": self._thread(ticket, include_internal=True),
        })
        return data

    def reply(
        self,
        actor_id: int,
        ticket_id: int,
        message: str,
        status: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Append a staff reply and update the ticket in one transaction.

        The first staff member to reply claims an unassigned ticket. On any
        storage failure nothing is written.
        """
        new_status = status or TicketStatus.IN_PROGRESS.value
        _require_choice(new_status, VALID_STATUSES, "Invalid status")
        if not message.strip():
            raise ValidationError("Message is required")

        ticket = self.db.scalars(
            select(SupportTicket).where(SupportTicket.id == ticket_id).with_for_update()
        ).first()
        if ticket is None:
            raise NotFoundError("Ticket not found")

        try:
            self.db.add(TicketMessage(
                ticket_id=ticket.id,
                user_id=actor_id,
                message=sanitize_text(message),
                is_internal=False,
                created_at=utcnow(),
            ))
            apply_status(ticket, new_status)
            if ticket.assigned_to is None:
                ticket.assigned_to = actor_id
            ticket.updated_at = utcnow()
            log_activity(
                self.db, "ticket_replied", user_id=actor_id,
                details=f"Replied to ticket #{ticket_id} and updated status to {new_status}",
                ip_address=ip_address, user_agent=user_agent,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("An error occurred while sending reply", detail=e)

        logger.info(f"Ticket #{ticket_id} replied by user {actor_id}, status {new_status}")

    def update_status(
        self,
        actor_id: int,
        ticket_id: int,
        status: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Set the ticket status without a message. Idempotent."""
        _require_choice(status, VALID_STATUSES, "Invalid status")

        ticket = self.db.get(SupportTicket, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found")

        try:
            apply_status(ticket, status)
            ticket.updated_at = utcnow()
            log_activity(
                self.db, "ticket_status_updated", user_id=actor_id,
                details=f"Updated ticket #{ticket_id} status to {status}",
                ip_address=ip_address, user_agent=user_agent,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("An error occurred while updating ticket status", detail=e)

        return {
            "ticket_id": ticket.id,
            "status": ticket.status,
            "resolved_at": format_datetime(ticket.resolved_at),
        }

    # ========== SERIALIZATION ==========

    def _ticket_summary(self, ticket: SupportTicket) -> Dict[str, Any]:
        return {
            "id": ticket.id,
            "subject": ticket.subject,
            "description": ticket.description,
            "priority": ticket.priority,
            "status": ticket.status,
            "category": ticket.category,
            "created_at": format_datetime(ticket.created_at),
            "updated_at": format_datetime(ticket.updated_at),
            "resolved_at": format_datetime(ticket.resolved_at),
        }

    def _staff_summary(self, ticket: SupportTicket) -> Dict[str, Any]:
        data = self._ticket_summary(ticket)
        data.update({
            "assigned_to": ticket.assigned_to,
            "assigned_admin_name": ticket.assignee.full_name if ticket.assignee else None,
            "user_name": ticket.user.full_name,
            "user_email": ticket.user.email,
        })
        return data

    def _thread(self, ticket: SupportTicket, include_internal: bool) -> List[Dict[str, Any]]:
        """Messages oldest first; ``is_admin`` reflects the author's current roles."""
        messages = self.db.scalars(
            select(TicketMessage)
            .options(selectinload(TicketMessage.author))
            .where(TicketMessage.ticket_id == ticket.id)
            .order_by(TicketMessage.created_at.asc(), TicketMessage.id.asc())
        ).all()

        thread = []
        for msg in messages:
            if msg.is_internal and not include_internal:
                continue
            thread.append({
                "id": msg.id,
                "message": msg.message,
                "is_internal": msg.is_internal,
                "is_admin": RBACPolicy.is_staff(msg.author.role_names),
                "sender_name": msg.author.full_name,
                "created_at": format_datetime(msg.created_at),
            })
        return thread
