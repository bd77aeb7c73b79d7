"""Tests for insight generation: prompt shape, canned fallbacks, persistence."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from screensense.capture.models import ActivityItem
from screensense.capture.screenpipe import mock_activity
from screensense.insights.generator import build_prompt, request_insight
from screensense.insights.llm_provider import SYSTEM_PROMPT, CompletionSettings
from screensense.store.documents import DocumentStore
from screensense.store.repositories import SAMPLE_INSIGHTS, InsightRepository
from tests.conftest import make_llm_response

_TS = datetime(2026, 2, 20, 11, 0, tzinfo=timezone.utc)


@pytest.fixture()
def repo(tmp_path):
    store = DocumentStore(tmp_path / "gen.db")
    yield InsightRepository(store)
    store.close()


def _settings() -> CompletionSettings:
    return CompletionSettings(api_key="sk-test", api_base="https://llm.test")


def _live_items() -> list[ActivityItem]:
    return [ActivityItem(kind="OCR", timestamp=_TS, text="Jira: SCR-12 in progress", app_name="Chrome")]


class TestBuildPrompt:
    def test_message_shape(self) -> None:
        messages = build_prompt(_live_items(), "automation")
        assert messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert messages[1]["role"] == "user"

        payload = json.loads(messages[1]["content"])
        assert payload["task"] == "analyze_screen_activity"
        assert payload["request"] == "Analyze this screen activity data and provide automation insights."
        assert payload["activity_data"][0]["type"] == "OCR"
        assert payload["activity_data"][0]["content"]["text"] == "Jira: SCR-12 in progress"


class TestRequestInsight:
    @pytest.mark.asyncio
    async def test_live_insight_is_saved(self, repo, fake_sleep) -> None:
        with patch("litellm.acompletion", new=AsyncMock(return_value=make_llm_response("Automate the standup summary"))):
            result = await request_insight(_live_items(), "automation", _settings(), insights=repo, sleep=fake_sleep)

        assert result.text == "Automate the standup summary"
        assert result.source == "live"
        assert result.insight_id is not None
        assert "synthetic_activity" not in result.metadata

        stored = repo.get(result.insight_id)
        assert stored.text == "Automate the standup summary"
        assert stored.category == "automation"
        assert stored.status == "new"
        assert stored.priority == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("category", list(SAMPLE_INSIGHTS))
    async def test_failure_uses_canned_text(self, category, repo, sleeps, fake_sleep) -> None:
        side_effect = [httpx.ConnectError("Connection refused") for _ in range(4)]
        with patch("litellm.acompletion", new=AsyncMock(side_effect=side_effect)):
            result = await request_insight(_live_items(), category, _settings(), insights=repo, sleep=fake_sleep)

        assert result.text == SAMPLE_INSIGHTS[category]
        assert result.source == "mock"
        assert result.metadata["error_type"] == "network_error"
        assert sleeps == [1.0, 2.0, 4.0]
        assert repo.get(result.insight_id).text == SAMPLE_INSIGHTS[category]

    @pytest.mark.asyncio
    async def test_unknown_category_falls_back_to_recommendation(self, fake_sleep) -> None:
        result = await request_insight(_live_items(), "gossip", CompletionSettings(), sleep=fake_sleep)
        assert result.category == "recommendation"
        assert result.text == SAMPLE_INSIGHTS["recommendation"]
        assert result.insight_id is None

    @pytest.mark.asyncio
    async def test_synthetic_activity_is_flagged(self, fake_sleep, mock_llm) -> None:
        result = await request_insight(mock_activity(), "productivity", _settings(), sleep=fake_sleep)
        assert result.source == "live"
        assert result.metadata["synthetic_activity"] is True

    @pytest.mark.asyncio
    async def test_store_failure_still_returns_insight(self, tmp_path, fake_sleep, mock_llm) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        broken = InsightRepository(DocumentStore(blocker / "db" / "x.db"))

        result = await request_insight(_live_items(), "reminder", _settings(), insights=broken, sleep=fake_sleep)
        assert result.text == "Test insight"
        assert result.insight_id is None
