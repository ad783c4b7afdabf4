"""Standard response envelope.

Every API response (success or error) has the shape::

    {"success": bool, "message": str, "data": any, "timestamp": "YYYY-MM-DD HH:MM:SS"}

Route handlers return ``envelope(...)`` dicts; the exception handlers in
``app.main`` build error responses with ``error_response``.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def timestamp() -> str:
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Render a stored datetime in the envelope timestamp format."""
    if value is None:
        return None
    return value.strftime(TIMESTAMP_FORMAT)


def envelope(data: Any = None, message: str = "Success", success: bool = True) -> dict:
    """Wrap a payload in the standard envelope."""
    return {
        "success": success,
        "message": message,
        "data": data,
        "timestamp": timestamp(),
    }


def error_response(status_code: int, message: str, data: Any = None, headers=None) -> JSONResponse:
    """Envelope with ``success=False`` as a ready-to-send response."""
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(envelope(data=data, message=message, success=False)),
        headers=headers,
    )
