"""Public contact form."""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.exceptions import RateLimitedError, StorageError
from app.core.rate_limit import LoginAttemptLimiter
from app.core.sanitize import sanitize_text
from app.db.base import utcnow
from app.models.contact import SERVICE_TYPES, ContactInquiry

logger = logging.getLogger(__name__)

EXPECTED_RESPONSE_TIME = "24 hours"


class ContactService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.limiter = LoginAttemptLimiter.from_settings(db, settings)

    def submit(
        self,
        name: str,
        email: str,
        subject: str,
        message: str,
        service_type: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store an inquiry. Unknown service types are filed as ``general``."""
        rate_key = ip_address or "unknown"
        if not self.limiter.allow(rate_key, "contact"):
            raise RateLimitedError("Too many contact form submissions. Please try again later.")

        if service_type not in SERVICE_TYPES:
            service_type = "general"

        inquiry = ContactInquiry(
            name=sanitize_text(name, ContactInquiry.name.type.length, "Name"),
            email=email,
            subject=sanitize_text(subject, ContactInquiry.subject.type.length, "Subject"),
            message=sanitize_text(message),
            service_type=service_type,
            created_at=utcnow(),
        )
        try:
            self.db.add(inquiry)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self.limiter.record(rate_key, "contact", success=False)
            raise StorageError("An error occurred while submitting your message", detail=e)

        self.limiter.record(rate_key, "contact", success=True)
        logger.info(f"Contact inquiry #{inquiry.id} ({service_type}) from {email}")

        return {
            "inquiry_id": inquiry.id,
            "message": f"Thank you for contacting us! We will get back to you within {EXPECTED_RESPONSE_TIME}.",
            "expected_response_time": EXPECTED_RESPONSE_TIME,
        }
