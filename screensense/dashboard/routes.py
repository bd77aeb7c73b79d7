"""FastAPI router for activity capture, insights and desktop notifications."""

from __future__ import annotations

import hmac
import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from screensense.capture.screenpipe import fetch_recent_activity, is_synthetic
from screensense.common.context import AppContext
from screensense.common.errors import StoreError
from screensense.dashboard.responses import envelope, get_ctx
from screensense.insights.generator import request_insight
from screensense.store.models import CATEGORIES, STATUSES

logger = logging.getLogger("screensense.dashboard.routes")

router = APIRouter(prefix="/api", tags=["dashboard"])

_UNAVAILABLE_NOTE = (
    "Screenpipe is not running or is unavailable. Start it with `screenpipe` "
    "and check the service logs."
)


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _enforce_rate_limit(ctx: AppContext, request: Request) -> None:
    if not ctx.rate_limiter.check(_client_key(request)):
        raise HTTPException(429, "Too many requests, please try again later")


def _require_bearer(ctx: AppContext, request: Request) -> None:
    header = request.headers.get("authorization", "")
    secret = ctx.api_secret
    if not header or not secret:
        raise HTTPException(401, "Missing or invalid authorization header")
    token = header[7:] if header.startswith("Bearer ") else header
    if not hmac.compare_digest(token.encode(), secret.encode()):
        raise HTTPException(401, "Invalid API key")


def _check_minutes(minutes: int, upper: int = 60) -> None:
    if minutes <= 0 or minutes > upper:
        raise HTTPException(400, f"Minutes must be a number between 1 and {upper}")


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(400, "Request body must be valid JSON") from None
    if not isinstance(body, dict):
        raise HTTPException(400, "Request body must be a JSON object")
    return body


# ------------------------------------------------------------------
# Activity
# ------------------------------------------------------------------

@router.get("/activity")
async def get_activity(request: Request, minutes: int = 5) -> JSONResponse:
    ctx = get_ctx(request)
    _enforce_rate_limit(ctx, request)
    _check_minutes(minutes)

    available = await ctx.screenpipe.is_available()
    items = await fetch_recent_activity(
        ctx.screenpipe, minutes, timeout=ctx.query_timeout, limit=ctx.capture_limit,
    )
    return envelope(
        True,
        data=[item.to_dict() for item in items],
        source="mock" if is_synthetic(items) else "live",
        count=len(items),
        note=None if available else _UNAVAILABLE_NOTE,
    )


@router.post("/activity")
async def capture_activity(request: Request, minutes: int = 5) -> JSONResponse:
    ctx = get_ctx(request)
    _enforce_rate_limit(ctx, request)
    _require_bearer(ctx, request)
    _check_minutes(minutes)

    items = await fetch_recent_activity(
        ctx.screenpipe, minutes, timeout=ctx.query_timeout, limit=ctx.capture_limit,
    )
    if not items:
        raise HTTPException(404, "No activity data found")
    source = "mock" if is_synthetic(items) else "live"

    try:
        saved = ctx.activities.save_activities(items)
    except StoreError as exc:
        logger.error("Database error while saving activity: %s", exc)
        return envelope(
            False,
            data=[item.to_dict() for item in items],
            message="Failed to save to database, but data was retrieved",
            source=source,
            count=len(items),
        )

    return envelope(
        True,
        data={"ids": [doc["id"] for doc in saved]},
        message=f"Saved {len(saved)} screen activity records",
        source=source,
        count=len(saved),
    )


@router.patch("/activity")
async def update_activity(request: Request) -> JSONResponse:
    ctx = get_ctx(request)
    body = await _json_body(request)
    activity_id = body.get("activityId")
    if not activity_id:
        raise HTTPException(400, "Missing required field: activityId")
    if not isinstance(activity_id, str):
        raise HTTPException(400, "activityId must be a string")
    processed = body.get("processed", True)
    if not isinstance(processed, bool):
        raise HTTPException(400, "processed must be true or false")

    doc = ctx.activities.mark_processed(activity_id, processed)
    if doc is None:
        raise HTTPException(404, "Activity not found")
    return envelope(
        True,
        data=doc,
        message=f"Activity marked {'processed' if processed else 'unprocessed'}",
        source="database",
    )


# ------------------------------------------------------------------
# Insights
# ------------------------------------------------------------------

@router.get("/insights")
async def list_insights(
    request: Request,
    status: str | None = None,
    category: str | None = Query(None, alias="type"),
    limit: int = 10,
    offset: int = 0,
) -> JSONResponse:
    ctx = get_ctx(request)
    if status and status not in STATUSES:
        raise HTTPException(400, f"status must be one of {', '.join(STATUSES)}")
    if category and category not in CATEGORIES:
        raise HTTPException(400, f"type must be one of {', '.join(CATEGORIES)}")
    if limit <= 0 or limit > 100 or offset < 0:
        raise HTTPException(400, "limit must be 1-100 and offset non-negative")

    page = ctx.insights.list_insights(status=status, category=category, limit=limit, offset=offset)
    return envelope(
        True,
        data=[insight.to_dict() for insight in page.items],
        source=page.source,
        count=len(page.items),
    )


@router.post("/insights")
async def generate_insight(
    request: Request,
    minutes: int = 15,
    category: str = Query("recommendation", alias="type"),
) -> JSONResponse:
    ctx = get_ctx(request)
    _check_minutes(minutes, upper=1440)
    if category not in CATEGORIES:
        raise HTTPException(400, f"type must be one of {', '.join(CATEGORIES)}")

    items = await fetch_recent_activity(
        ctx.screenpipe, minutes, timeout=ctx.query_timeout, limit=ctx.capture_limit,
    )
    if not items:
        raise HTTPException(404, "No activity data found to generate insights")

    result = await request_insight(items, category, ctx.llm, ctx.insights, sleep=ctx.sleep)
    source = "mock" if is_synthetic(items) or result.source == "mock" else "live"
    return envelope(
        True,
        data={
            "insight": result.text,
            "insightId": result.insight_id,
            "insightType": result.category,
            "activityCount": len(items),
            "metadata": result.metadata,
        },
        source=source,
    )


@router.patch("/insights")
async def update_insight(request: Request) -> JSONResponse:
    ctx = get_ctx(request)
    body = await _json_body(request)
    insight_id = body.get("insightId")
    status = body.get("status")
    if not insight_id or not status:
        raise HTTPException(400, "Missing required fields: insightId and status")
    if not isinstance(insight_id, str) or not isinstance(status, str):
        raise HTTPException(400, "insightId and status must be strings")
    if status not in STATUSES:
        raise HTTPException(400, f"status must be one of {', '.join(STATUSES)}")

    insight = ctx.insights.update_status(insight_id, status)
    if insight is None:
        raise HTTPException(404, "Insight not found or update failed")
    return envelope(
        True,
        data=insight.to_dict(),
        message=f"Insight status updated to {status}",
        source=insight.source,
        isMock=insight.source == "mock",
    )


# ------------------------------------------------------------------
# Notifications & health
# ------------------------------------------------------------------

@router.post("/notification")
async def send_notification(request: Request) -> JSONResponse:
    ctx = get_ctx(request)
    body = await _json_body(request)
    title = body.get("title")
    message = body.get("message") or body.get("body")
    if not title or not message:
        raise HTTPException(400, "Both title and message are required")

    result = await ctx.screenpipe.notify(title, message)
    return envelope(
        True,
        data={"simulated": result.simulated, "delivered": result.success and not result.simulated},
        message=result.message,
        source="mock" if result.simulated else "live",
        note="Screenpipe is not running; the notification was simulated." if result.simulated else None,
    )


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    ctx = get_ctx(request)
    store_ok = True
    store_error = None
    try:
        ctx.store.connect()
    except StoreError as exc:
        store_ok = False
        store_error = str(exc)

    return envelope(
        True,
        data={
            "screenpipe": await ctx.screenpipe.is_available(),
            "llm_configured": ctx.llm.configured,
            "store": store_ok,
            "store_error": store_error,
        },
    )
