# src/geyser/api/errors.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import Request
from fastapi.responses import JSONResponse

from geyser.errors import GeyserError, Unauthorized

Json = Dict[str, Any]


def error_body(code: str, message: str, details: Any = None) -> Json:
    return {"ok": False, "error": {"code": code, "message": message, "details": details or {}}}


async def geyser_error_handler(request: Request, exc: GeyserError) -> JSONResponse:
    status = 403 if isinstance(exc, Unauthorized) else 400
    return JSONResponse(status_code=status, content=error_body(exc.code, exc.reason, exc.details))
