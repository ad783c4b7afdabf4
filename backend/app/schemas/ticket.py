"""Support ticket schemas.

Category, priority and status arrive as plain strings; ``TicketService``
validates them against the allowed sets so the error names the field.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TicketCreate(BaseModel):
    """Customer ticket. ``subject`` is the category, ``title`` the headline."""

    model_config = ConfigDict(str_strip_whitespace=True)

    subject: str = Field(..., min_length=1, max_length=50)
    priority: str = Field(..., min_length=1, max_length=20)
    title: str = Field(..., min_length=1, max_length=500)
    message: str = Field(..., min_length=1, max_length=10000)


class TicketReply(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    ticket_id: int = Field(..., alias="ticketId", gt=0)
    message: str = Field(..., min_length=1, max_length=10000)
    status: Optional[str] = Field(None, max_length=20)


class TicketStatusUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    ticket_id: int = Field(..., alias="ticketId", gt=0)
    status: str = Field(..., min_length=1, max_length=20)
