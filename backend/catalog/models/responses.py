"""
Response envelopes.

Successful responses: {"success": true, "status": 200, "data": {...}}
Errors: {"success": false, "status": 404, "error": {"code", "message"}, "trace_id"}

Cached endpoints store the whole envelope, not just `data`.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorBody(BaseModel):
    code: str
    message: str


class ErrorEnvelope(BaseModel):
    success: bool = False
    status: int
    error: ErrorBody
    trace_id: Optional[str] = None


def success_envelope(data: Dict[str, Any], status: int = 200) -> Dict[str, Any]:
    return {"success": True, "status": status, "data": data}


def error_envelope(status: int, code: str, message: str, trace_id: Optional[str] = None) -> Dict[str, Any]:
    return ErrorEnvelope(
        status=status,
        error=ErrorBody(code=code, message=message),
        trace_id=trace_id,
    ).model_dump()
