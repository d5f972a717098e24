"""
Shared pieces for the routers: the response envelope and the request clock.
"""
from datetime import datetime
from typing import Any, Optional

from models.todo import utcnow


def get_now() -> datetime:
    """Request timestamp. Overridden in tests to pin the clock."""
    return utcnow()


def success(data: Any = None, message: Optional[str] = None, **extra: Any) -> dict:
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body.update(extra)
    return body
