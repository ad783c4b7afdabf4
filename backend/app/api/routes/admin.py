"""Staff dashboard routes.

Ticket and stats endpoints require any staff role (admin, manager, support);
user management requires admin or manager.
"""

from typing import Optional

from fastapi import APIRouter, Request

from app.core.rate_limit import client_ip
from app.core.rbac import RequireStaff, RequireUserManager, SettingsDep
from app.core.responses import envelope
from app.db.session import DbSession
from app.schemas.ticket import TicketReply, TicketStatusUpdate
from app.schemas.user import ToggleStatusRequest
from app.services.stats_service import StatsService
from app.services.ticket_service import TicketService
from app.services.user_service import UserService

router = APIRouter()


@router.get("/stats")
def get_stats(identity: RequireStaff, db: DbSession):
    return envelope(StatsService(db).dashboard(), "Statistics retrieved successfully")


@router.get("/tickets")
def list_tickets(
    identity: RequireStaff,
    db: DbSession,
    status: Optional[str] = None,
    priority: Optional[str] = None,
):
    """All tickets, most urgent first."""
    data = TicketService(db).list_tickets(status=status, priority=priority)
    return envelope(data, "Tickets retrieved successfully")


@router.get("/tickets/{ticket_id}")
def get_ticket_details(ticket_id: int, identity: RequireStaff, db: DbSession):
    data = TicketService(db).get_ticket_details(ticket_id)
    return envelope(data, "Ticket details retrieved successfully")


@router.post("/tickets/reply")
def reply_to_ticket(request: Request, body: TicketReply, identity: RequireStaff, db: DbSession):
    TicketService(db).reply(
        actor_id=identity.id,
        ticket_id=body.ticket_id,
        message=body.message,
        status=body.status,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return envelope(None, "Reply sent and ticket updated successfully")


@router.post("/tickets/status")
def update_ticket_status(request: Request, body: TicketStatusUpdate, identity: RequireStaff, db: DbSession):
    data = TicketService(db).update_status(
        actor_id=identity.id,
        ticket_id=body.ticket_id,
        status=body.status,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return envelope(data, "Ticket status updated successfully")


@router.get("/users")
def list_users(identity: RequireUserManager, db: DbSession, settings: SettingsDep):
    return envelope(UserService(db, settings).list_users(), "Users retrieved successfully")


@router.post("/users/toggle-status")
def toggle_user_status(
    request: Request,
    body: ToggleStatusRequest,
    identity: RequireUserManager,
    db: DbSession,
    settings: SettingsDep,
):
    data = UserService(db, settings).toggle_status(
        identity,
        body.user_id,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return envelope(data, f"User status changed to {data['new_status']} successfully")
