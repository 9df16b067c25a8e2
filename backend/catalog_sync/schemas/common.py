"""
Response envelope shared by the dashboard-facing endpoints.
"""
from typing import Any, Optional

from pydantic import BaseModel


class ErrorEnvelope(BaseModel):
    """Schema for failed responses."""

    success: bool = False
    error: str
    details: Optional[Any] = None


def ok(data: Any = None, **extra: Any) -> dict[str, Any]:
    """Wrap a payload in the success envelope."""
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, mode="json")
    return {"success": True, "data": data, **extra}


def fail(error: str, details: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        body["details"] = details
    return body
