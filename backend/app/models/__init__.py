"""SQLAlchemy models. Importing this package registers every table on ``Base.metadata``."""

from app.models.activity import ActivityLog, LoginAttempt
from app.models.contact import ContactInquiry
from app.models.ticket import SupportTicket, TicketMessage
from app.models.user import Role, User, UserSession, user_roles

__all__ = [
    "ActivityLog",
    "ContactInquiry",
    "LoginAttempt",
    "Role",
    "SupportTicket",
    "TicketMessage",
    "User",
    "UserSession",
    "user_roles",
]
