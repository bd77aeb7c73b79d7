"""ScreenSense dashboard API -- FastAPI app serving activity, insights and notifications.

Run with:
    python3 -m uvicorn screensense.dashboard.app:app --host 0.0.0.0 --port 8765
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from http import HTTPStatus
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from screensense.common.config import REPO_DIR, load_config, load_env_local, setup_logging
from screensense.common.context import AppContext, build_context
from screensense.common.errors import ScreenSenseError
from screensense.dashboard.responses import envelope

logger = logging.getLogger("screensense.dashboard")

CONFIG_PATH = Path(os.environ.get("SCREENSENSE_CONFIG", REPO_DIR / "config" / "config.yaml"))


# ══════════════════════════════════════════════════════════════════════════════
#  Error handlers
# ══════════════════════════════════════════════════════════════════════════════

async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    try:
        phrase = HTTPStatus(exc.status_code).phrase
    except ValueError:
        phrase = "Error"
    return envelope(False, error=phrase, message=str(exc.detail), status_code=exc.status_code)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    return envelope(False, error="Invalid parameters", message=problems, status_code=400)


async def _screensense_error(request: Request, exc: ScreenSenseError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return envelope(False, error=type(exc).__name__, message=str(exc), status_code=exc.status_code)


# ══════════════════════════════════════════════════════════════════════════════
#  App factory
# ══════════════════════════════════════════════════════════════════════════════

def create_app(ctx: AppContext | None = None) -> FastAPI:
    """Build the dashboard app. Without *ctx*, one is built from config.yaml at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "ctx", None) is None:
            load_env_local()
            cfg = load_config(CONFIG_PATH)
            setup_logging(cfg)
            app.state.ctx = build_context(cfg)
        yield
        await app.state.ctx.aclose()

    app = FastAPI(title="ScreenSense Dashboard API", version="1.0.0", lifespan=lifespan)
    app.state.ctx = ctx

    origins = ctx.cfg["api"]["cors_origins"] if ctx else ["http://localhost:3000", "http://127.0.0.1:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(HTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(ScreenSenseError, _screensense_error)

    from screensense.dashboard.routes import router
    app.include_router(router)
    return app


app = create_app()
