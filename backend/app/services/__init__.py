# Services module

from app.services.audit_service import log_activity
from app.services.contact_service import ContactService
from app.services.stats_service import StatsService
from app.services.ticket_service import TicketService, apply_status
from app.services.user_service import UserService, create_staff_user, ensure_default_roles
