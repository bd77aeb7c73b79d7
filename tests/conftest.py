"""Shared fixtures: temp config + DB, fake Screenpipe transport, mocked LiteLLM."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import pytest_asyncio

from screensense.capture.screenpipe import ScreenpipeClient
from screensense.common.config import load_config
from screensense.common.context import build_context

SCREENPIPE_URL = "http://screenpipe.test"

_ENV_VARS = (
    "NEBIUS_API_KEY",
    "NEBIUS_API_ENDPOINT",
    "API_SECRET_KEY",
    "SCREENSENSE_SCREENPIPE_URL",
    "SCREENSENSE_NOTIFY_URL",
    "SCREENSENSE_DB_PATH",
    "SCREENSENSE_LOG_DIR",
)


def sp_item(
    text: str,
    kind: str = "OCR",
    app: str = "Code",
    window: str = "main.py",
    minutes_ago: float = 1.0,
) -> dict[str, Any]:
    """Build one Screenpipe search result in its wire shape."""
    ts = (datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)).isoformat()
    if kind == "Audio":
        return {"type": "Audio", "content": {"transcription": text, "timestamp": ts, "speaker_id": 1}}
    return {
        "type": kind,
        "content": {"text": text, "timestamp": ts, "app_name": app, "window_name": window},
    }


class FakeScreenpipe:
    """httpx handler standing in for the Screenpipe search + notify endpoints."""

    def __init__(self) -> None:
        self.items: list[dict[str, Any]] = []
        self.down = False
        self.search_status = 200
        self.notify_status = 200
        self.requests: list[httpx.Request] = []
        self.notifications: list[dict[str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("Connection refused", request=request)
        if request.url.path == "/search":
            if self.search_status != 200:
                return httpx.Response(self.search_status, json={"error": "boom"})
            return httpx.Response(200, json={
                "data": self.items,
                "pagination": {"limit": 50, "offset": 0, "total": len(self.items)},
            })
        if request.url.path == "/notify":
            self.notifications.append(json.loads(request.content))
            return httpx.Response(self.notify_status, json={"success": self.notify_status == 200})
        return httpx.Response(404)

    def search_params(self) -> list[dict[str, str]]:
        return [dict(r.url.params) for r in self.requests if r.url.path == "/search"]


def make_llm_response(content: str | None = "Test insight"):
    """Build a mock LiteLLM ModelResponse."""
    msg = MagicMock()
    msg.content = content

    choice = MagicMock()
    choice.message = msg

    resp = MagicMock()
    resp.choices = [choice]
    return resp


@pytest.fixture()
def cfg(tmp_path, monkeypatch) -> dict[str, Any]:
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    config_file = tmp_path / "config.yaml"
    config_file.write_text(f"""
log_dir: {tmp_path}/logs
screenpipe:
  base_url: {SCREENPIPE_URL}
  notify_url: {SCREENPIPE_URL}/notify
  query_timeout: 2
  health_timeout: 1
llm:
  api_key: sk-test-fake-key
  api_base: https://llm.test
store:
  db_path: {tmp_path}/screensense.db
api:
  secret_key: test-secret
""")
    return load_config(config_file)


@pytest.fixture()
def fake_screenpipe() -> FakeScreenpipe:
    return FakeScreenpipe()


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)
    return _sleep


@pytest.fixture()
def mock_llm():
    """Patch litellm.acompletion to return a deterministic response."""
    with patch("litellm.acompletion", new=AsyncMock(return_value=make_llm_response())) as m:
        yield m


@pytest_asyncio.fixture()
async def ctx(cfg, fake_screenpipe, fake_sleep):
    screenpipe = ScreenpipeClient(
        base_url=SCREENPIPE_URL,
        notify_url=f"{SCREENPIPE_URL}/notify",
        health_timeout=1.0,
        transport=httpx.MockTransport(fake_screenpipe.handler),
    )
    context = build_context(cfg, screenpipe=screenpipe, sleep=fake_sleep)
    yield context
    await context.aclose()


@pytest_asyncio.fixture()
async def client(ctx, mock_llm):
    """Async httpx client bound to the FastAPI app with mocked LLM and temp DB."""
    from screensense.dashboard.app import create_app

    transport = httpx.ASGITransport(app=create_app(ctx))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
