"""Customer ticket routes."""

from fastapi import APIRouter, Request, status

from app.core.rate_limit import client_ip
from app.core.rbac import CurrentUser
from app.core.responses import envelope
from app.db.session import DbSession
from app.schemas.ticket import TicketCreate
from app.services.ticket_service import TicketService

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_ticket(request: Request, body: TicketCreate, identity: CurrentUser, db: DbSession):
    data = TicketService(db).create_ticket(
        user_id=identity.id,
        category=body.subject,
        priority=body.priority,
        title=body.title,
        message=body.message,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return envelope(data, "Support ticket created successfully")


@router.get("")
def list_my_tickets(identity: CurrentUser, db: DbSession):
    return envelope(TicketService(db).get_user_tickets(identity.id), "Tickets retrieved successfully")


@router.get("/{ticket_id}")
def get_my_ticket(ticket_id: int, identity: CurrentUser, db: DbSession):
    """One of the caller's tickets with its public thread."""
    data = TicketService(db).get_user_ticket(identity.id, ticket_id)
    return envelope(data, "Ticket retrieved successfully")
