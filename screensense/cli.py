"""Command-line interface for ScreenSense.

Usage:
    screensense serve --port 8765
    screensense capture --minutes 10
    screensense capture --minutes 10 --save
    screensense insight --minutes 15 --type productivity
    screensense insights --status new --type reminder
    screensense notify "Break time" "Stand up and stretch"
    screensense health
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Any

from screensense.capture.screenpipe import fetch_recent_activity, is_synthetic
from screensense.common.config import load_config, load_env_local, setup_logging
from screensense.common.context import AppContext, build_context
from screensense.common.errors import StoreError
from screensense.insights.generator import request_insight
from screensense.store.models import CATEGORIES, STATUSES


async def cmd_capture(args: argparse.Namespace, ctx: AppContext) -> None:
    items = await fetch_recent_activity(
        ctx.screenpipe, args.minutes, timeout=ctx.query_timeout, limit=ctx.capture_limit,
    )
    label = "synthetic sample" if is_synthetic(items) else "live"
    print(f"{len(items)} capture(s) from the last {args.minutes} minutes ({label}):\n")
    for item in items:
        where = " - ".join(p for p in (item.app_name, item.window_name) if p) or item.kind
        print(f"  [{item.timestamp:%H:%M:%S}] [{item.kind:5s}] {where}")
        print(f"         {item.primary_text()[:120]}")
    if args.save:
        saved = ctx.activities.save_activities(items)
        print(f"\nSaved {len(saved)} record(s).")


async def cmd_insight(args: argparse.Namespace, ctx: AppContext) -> None:
    items = await fetch_recent_activity(
        ctx.screenpipe, args.minutes, timeout=ctx.query_timeout, limit=ctx.capture_limit,
    )
    result = await request_insight(items, args.type, ctx.llm, ctx.insights)
    print(f"[{result.category}] ({result.source}) {result.text}")
    if result.source == "mock":
        print(f"  fallback reason: {result.metadata.get('error_type', 'unknown')}")


async def cmd_insights(args: argparse.Namespace, ctx: AppContext) -> None:
    page = ctx.insights.list_insights(status=args.status, category=args.type, limit=args.limit)
    if page.source == "mock":
        print("No stored insights match; showing samples.\n")
    for insight in page.items:
        print(f"  {insight.id}  [{insight.category:14s}] [{insight.status:11s}] p{insight.priority}")
        print(f"         {insight.text}")
        print()


async def cmd_notify(args: argparse.Namespace, ctx: AppContext) -> None:
    result = await ctx.screenpipe.notify(args.title, args.body)
    print(result.message)


async def cmd_health(args: argparse.Namespace, ctx: AppContext) -> None:
    available = await ctx.screenpipe.is_available()
    print(f"Screenpipe:     {'up' if available else 'down'} ({ctx.screenpipe.base_url})")
    print(f"LLM configured: {'yes' if ctx.llm.configured else 'no'}")
    try:
        ctx.store.connect()
        print("Store:          ok")
    except StoreError as exc:
        print(f"Store:          error ({exc})")


def cmd_serve(args: argparse.Namespace, cfg: dict[str, Any]) -> None:
    import uvicorn

    from screensense.dashboard.app import create_app

    app = create_app(build_context(cfg))
    uvicorn.run(app, host=args.host, port=args.port)


async def _run(command: Any, args: argparse.Namespace, cfg: dict[str, Any]) -> None:
    ctx = build_context(cfg)
    with ctx.store:
        try:
            await command(args, ctx)
        finally:
            await ctx.screenpipe.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(prog="screensense", description="Screen activity insights")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")

    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Run the dashboard API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8765)

    p_capture = sub.add_parser("capture", help="Show recent captures")
    p_capture.add_argument("--minutes", type=int, default=5)
    p_capture.add_argument("--save", action="store_true", help="Persist the captures")

    p_insight = sub.add_parser("insight", help="Generate one insight from recent activity")
    p_insight.add_argument("--minutes", type=int, default=15)
    p_insight.add_argument("--type", choices=CATEGORIES, default="recommendation")

    p_list = sub.add_parser("insights", help="List stored insights")
    p_list.add_argument("--status", choices=STATUSES, default=None)
    p_list.add_argument("--type", choices=CATEGORIES, default=None)
    p_list.add_argument("--limit", type=int, default=10)

    p_notify = sub.add_parser("notify", help="Send a desktop notification")
    p_notify.add_argument("title")
    p_notify.add_argument("body")

    sub.add_parser("health", help="Check Screenpipe, LLM and store")

    args = parser.parse_args()
    load_env_local()
    cfg = load_config(args.config)
    setup_logging(cfg)

    if args.command == "serve":
        cmd_serve(args, cfg)
        return

    dispatch = {
        "capture": cmd_capture,
        "insight": cmd_insight,
        "insights": cmd_insights,
        "notify": cmd_notify,
        "health": cmd_health,
    }
    asyncio.run(_run(dispatch[args.command], args, cfg))


if __name__ == "__main__":
    main()
