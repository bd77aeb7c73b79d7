"""Tests for config loading, env overrides and validation."""

from __future__ import annotations

import os

import pytest

from screensense.common.config import REPO_DIR, load_config, load_env_local, resolve_path


@pytest.fixture()
def clean_env(monkeypatch):
    for var in ("NEBIUS_API_KEY", "NEBIUS_API_ENDPOINT", "API_SECRET_KEY",
                "SCREENSENSE_SCREENPIPE_URL", "SCREENSENSE_DB_PATH"):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


def test_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_defaults_fill_missing_sections(tmp_path, clean_env) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("screenpipe:\n  base_url: http://sp.local:3030\n")
    cfg = load_config(path)
    assert cfg["screenpipe"]["base_url"] == "http://sp.local:3030"
    assert cfg["screenpipe"]["query_timeout"] == 15.0
    assert cfg["llm"]["max_retries"] == 3
    assert cfg["api"]["rate_limit"] == {"max_requests": 10, "window_seconds": 60}


def test_env_overrides(tmp_path, clean_env) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("llm:\n  api_key: from-file\n")
    clean_env.setenv("NEBIUS_API_KEY", "from-env")
    clean_env.setenv("NEBIUS_API_ENDPOINT", "https://api.studio.nebius.ai")
    clean_env.setenv("API_SECRET_KEY", "s3cret")
    clean_env.setenv("SCREENSENSE_SCREENPIPE_URL", "http://other:3030")

    cfg = load_config(path)
    assert cfg["llm"]["api_key"] == "from-env"
    assert cfg["llm"]["api_base"] == "https://api.studio.nebius.ai"
    assert cfg["api"]["secret_key"] == "s3cret"
    assert cfg["screenpipe"]["base_url"] == "http://other:3030"


@pytest.mark.parametrize("body", [
    "screenpipe:\n  query_timeout: 0\n",
    "llm:\n  timeout: -1\n",
    "llm:\n  max_retries: -2\n",
    "api:\n  rate_limit:\n    max_requests: 0\n",
])
def test_invalid_values(tmp_path, clean_env, body) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(body)
    with pytest.raises(ValueError):
        load_config(path)


def test_shipped_config_loads(clean_env) -> None:
    cfg = load_config(REPO_DIR / "config" / "config.yaml")
    assert cfg["screenpipe"]["notify_url"] == "http://localhost:11435/notify"


def test_env_local_does_not_override_existing(tmp_path, clean_env) -> None:
    env_file = tmp_path / ".env.local"
    env_file.write_text("# keys\nNEBIUS_API_KEY=from-file\nAPI_SECRET_KEY = spaced\n")
    clean_env.setenv("NEBIUS_API_KEY", "already-set")
    load_env_local(env_file)

    assert os.environ["NEBIUS_API_KEY"] == "already-set"
    assert os.environ["API_SECRET_KEY"] == "spaced"


def test_resolve_path() -> None:
    assert resolve_path("data/x.db") == REPO_DIR / "data" / "x.db"
    assert resolve_path("/tmp/x.db").is_absolute()
