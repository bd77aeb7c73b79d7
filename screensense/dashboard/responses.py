"""JSON envelope shared by every dashboard endpoint."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from screensense.common.context import AppContext


def envelope(
    success: bool,
    *,
    data: Any = None,
    error: str | None = None,
    message: str | None = None,
    source: str | None = None,
    status_code: int = 200,
    **extra: Any,
) -> JSONResponse:
    """Standard JSON response: {success, data|error, message, timestamp, source}."""
    body: dict[str, Any] = {"success": success}
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    if message is not None:
        body["message"] = message
    body["timestamp"] = datetime.now(timezone.utc).isoformat()
    if source is not None:
        body["source"] = source
    body.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(body, status_code=status_code)


def get_ctx(request: Request) -> AppContext:
    return request.app.state.ctx
