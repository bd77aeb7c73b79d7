"""Load and validate ScreenSense configuration from config.yaml."""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("screensense")

REPO_DIR = Path(__file__).resolve().parent.parent.parent
_DEFAULT_CONFIG_PATH = REPO_DIR / "config" / "config.yaml"

DEFAULTS: dict[str, Any] = {
    "log_dir": "logs",
    "log_level": "INFO",
    "screenpipe": {
        "base_url": "http://localhost:3030",
        "notify_url": "http://localhost:11435/notify",
        "query_timeout": 15.0,
        "health_timeout": 3.0,
        "http_timeout": 20.0,
        "limit": 50,
    },
    "llm": {
        "provider": "openai",
        "model": "meta-llama/Meta-Llama-3.1-70B-Instruct",
        "api_base": None,
        "api_key": None,
        "max_tokens": 500,
        "temperature": 0.5,
        "timeout": 30.0,
        "max_retries": 3,
    },
    "store": {
        "db_path": "data/screensense.db",
    },
    "api": {
        "secret_key": None,
        "rate_limit": {"max_requests": 10, "window_seconds": 60},
        "cors_origins": ["http://localhost:3000", "http://127.0.0.1:3000"],
    },
}


def load_env_local(env_file: Path | None = None) -> None:
    """Load .env.local into os.environ so API keys can live outside config.yaml."""
    env_file = env_file or REPO_DIR / ".env.local"
    if not env_file.is_file():
        return
    for line in env_file.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" in line:
            key, _, value = line.partition("=")
            os.environ.setdefault(key.strip(), value.strip())


def load_config(config_path: Path | str | None = None) -> dict[str, Any]:
    """Load configuration from YAML file, with env-var overrides.

    Environment variable overrides (if set):
        SCREENSENSE_SCREENPIPE_URL -> screenpipe.base_url
        SCREENSENSE_NOTIFY_URL     -> screenpipe.notify_url
        SCREENSENSE_DB_PATH        -> store.db_path
        SCREENSENSE_LOG_DIR        -> log_dir
        NEBIUS_API_KEY             -> llm.api_key
        NEBIUS_API_ENDPOINT        -> llm.api_base
        API_SECRET_KEY             -> api.secret_key
    """
    path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    cfg = _merge(copy.deepcopy(DEFAULTS), raw)

    _env_override(cfg, "SCREENSENSE_SCREENPIPE_URL", "screenpipe", "base_url")
    _env_override(cfg, "SCREENSENSE_NOTIFY_URL", "screenpipe", "notify_url")
    _env_override(cfg, "SCREENSENSE_DB_PATH", "store", "db_path")
    _env_override(cfg, "SCREENSENSE_LOG_DIR", "log_dir")
    _env_override(cfg, "NEBIUS_API_KEY", "llm", "api_key")
    _env_override(cfg, "NEBIUS_API_ENDPOINT", "llm", "api_base")
    _env_override(cfg, "API_SECRET_KEY", "api", "secret_key")

    _validate(cfg)
    return cfg


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def _env_override(cfg: dict, env_key: str, *keys: str) -> None:
    """Override a nested config value from an environment variable."""
    val = os.environ.get(env_key)
    if val is None:
        return
    target = cfg
    for k in keys[:-1]:
        target = target.setdefault(k, {})
    target[keys[-1]] = val


def _validate(cfg: dict[str, Any]) -> None:
    """Validate numeric settings and warn about missing credentials."""
    for section, key in (
        ("screenpipe", "query_timeout"),
        ("screenpipe", "health_timeout"),
        ("llm", "timeout"),
    ):
        value = cfg[section][key]
        if not isinstance(value, (int, float)) or value <= 0:
            raise ValueError(f"{section}.{key} must be a positive number, got {value!r}")

    retries = cfg["llm"]["max_retries"]
    if not isinstance(retries, int) or retries < 0:
        raise ValueError(f"llm.max_retries must be a non-negative integer, got {retries!r}")

    limits = cfg["api"]["rate_limit"]
    if limits["max_requests"] <= 0 or limits["window_seconds"] <= 0:
        raise ValueError("api.rate_limit values must be positive")

    if not cfg["llm"].get("api_key") or not cfg["llm"].get("api_base"):
        logger.warning("LLM api_key/api_base not configured; insights will use canned text")

    if not cfg["api"].get("secret_key"):
        logger.warning("api.secret_key not set; POST /api/activity will reject every request")


def resolve_path(value: str | Path) -> Path:
    """Resolve a config path relative to the repo root."""
    path = Path(os.path.expanduser(str(value)))
    if not path.is_absolute():
        path = REPO_DIR / path
    return path


def setup_logging(cfg: dict[str, Any]) -> None:
    """Configure root logging: stderr + rotating file."""
    log_dir = resolve_path(cfg["log_dir"])
    log_dir.mkdir(parents=True, exist_ok=True)

    from logging.handlers import RotatingFileHandler

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    root = logging.getLogger("screensense")
    root.setLevel(getattr(logging, cfg.get("log_level", "INFO")))

    # stderr
    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    root.addHandler(sh)

    # rotating file
    fh = RotatingFileHandler(log_dir / "screensense.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    root.addHandler(fh)
