"""
api/responses.py -- JSON envelope helpers shared by all routers.

Success: {"success": true,  "message": ..., "data": ...}
Failure: {"success": false, "message": ..., "error": {"code": ..., "details"?: [...]}}

Failures are built by core.errors.error_body() so the request gate, the
exception handlers and the routes all emit identical bodies for the same kind.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.errors import ErrorKind, error_body


def success(data: Any, message: str, status_code: int = 200) -> JSONResponse:
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True)
    return JSONResponse(status_code=status_code, content={"success": True, "message": message, "data": data})


def failure(kind: ErrorKind, message: Optional[str] = None, details: Optional[list] = None) -> JSONResponse:
    return JSONResponse(status_code=kind.status, content=error_body(kind, message, details))
