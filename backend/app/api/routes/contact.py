"""Public contact form route."""

from fastapi import APIRouter, Request, status

from app.core.rate_limit import client_ip, limiter
from app.core.rbac import SettingsDep
from app.core.responses import envelope
from app.db.session import DbSession
from app.schemas.contact import ContactRequest
from app.services.contact_service import ContactService

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def submit_contact_form(request: Request, body: ContactRequest, db: DbSession, settings: SettingsDep):
    data = ContactService(db, settings).submit(
        name=body.name,
        email=body.email,
        subject=body.subject,
        message=body.message,
        service_type=body.service_type,
        ip_address=client_ip(request),
    )
    return envelope(data, "Contact form submitted successfully")
