"""Chat-completion calls through LiteLLM with bounded network retries.

Targets Nebius AI Studio (or any OpenAI-compatible endpoint) configured in
config.yaml under ``llm:``; the key and endpoint usually come from
``NEBIUS_API_KEY`` / ``NEBIUS_API_ENDPOINT``.

``complete()`` never raises. Network-level failures (no response received)
are retried with exponential backoff; anything that came back with an HTTP
status is not. When no answer can be had the result carries ``text=None``
and ``source="mock"`` plus failure metadata, and the caller substitutes
canned text.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger("screensense.insights.llm")

SYSTEM_PROMPT = (
    "You are an AI assistant analyzing screen and audio data to provide insights "
    "and automate tasks."
)

Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class CompletionSettings:
    api_key: str | None = None
    api_base: str | None = None
    provider: str = "openai"
    model: str = "meta-llama/Meta-Llama-3.1-70B-Instruct"
    max_tokens: int = 500
    temperature: float = 0.5
    timeout: float = 30.0
    max_retries: int = 3
    backoff_base: float = 1.0

    @classmethod
    def from_config(cls, llm_cfg: dict[str, Any]) -> "CompletionSettings":
        settings = cls()
        for key in ("api_key", "api_base", "provider", "model", "max_tokens",
                    "temperature", "timeout", "max_retries", "backoff_base"):
            if llm_cfg.get(key) is not None:
                setattr(settings, key, llm_cfg[key])
        return settings

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_base)

    def resolved_model(self) -> str:
        """LiteLLM model string; OpenAI-compatible endpoints need the ``openai/`` prefix."""
        if self.provider == "openai" and self.api_base and not self.model.startswith("openai/"):
            return f"openai/{self.model}"
        return self.model

    def resolved_api_base(self) -> str | None:
        """Nebius-style endpoints are configured without the /v1 suffix the client expects."""
        if not self.api_base:
            return None
        base = self.api_base.rstrip("/")
        return base if base.endswith("/v1") else f"{base}/v1"


@dataclass
class CompletionResult:
    text: str | None
    source: str  # "live" or "mock"
    metadata: dict[str, Any] = field(default_factory=dict)
    raw: Any = None

    @property
    def ok(self) -> bool:
        return self.source == "live" and self.text is not None


def _is_network_error(exc: BaseException) -> bool:
    """True when the request went out but no response came back."""
    import litellm

    return isinstance(
        exc,
        (litellm.APIConnectionError, litellm.Timeout, httpx.TransportError,
         ConnectionError, TimeoutError, asyncio.TimeoutError),
    )


def _classify(exc: BaseException) -> tuple[str, str]:
    """Map an exception to (error_type, human-readable message)."""
    if _is_network_error(exc):
        return "network_error", "Network error. No response received from the completion endpoint."

    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        if status == 401:
            return "authentication_error", "Authentication failed. Please check your API key."
        if status == 429:
            return "rate_limit_exceeded", "Rate limit exceeded. Please try again later."
        if status == 400:
            return "invalid_request", str(exc) or "Invalid request parameters"
        if status >= 500:
            return "server_error", "Completion endpoint server error. Please try again later."
        return "api_error", str(exc) or f"HTTP {status}"

    return "request_setup_error", str(exc) or "Error setting up the request"


def _fallback(error: str, error_type: str, retries: int) -> CompletionResult:
    return CompletionResult(
        text=None,
        source="mock",
        metadata={
            "source": "mock",
            "error": error,
            "error_type": error_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "retry_attempts": retries,
        },
    )


def _response_text(response: Any) -> str | None:
    try:
        return response.choices[0].message.content or None
    except (AttributeError, IndexError, TypeError):
        return None


async def complete(
    messages: list[dict[str, str]],
    settings: CompletionSettings,
    sleep: Sleep = asyncio.sleep,
) -> CompletionResult:
    """Send *messages* to the configured endpoint. Never raises.

    Parameters
    ----------
    messages:
        OpenAI-format message list (role + content dicts).
    settings:
        Endpoint, model and retry policy.
    sleep:
        Awaitable used for backoff delays (1s, 2s, 4s with the defaults).
    """
    if not settings.configured:
        logger.warning("LLM api_key/api_base missing, using mock response")
        return _fallback("LLM API configuration is missing", "missing_api_config", 0)

    import litellm

    kwargs: dict[str, Any] = {
        "model": settings.resolved_model(),
        "messages": messages,
        "max_tokens": settings.max_tokens,
        "temperature": settings.temperature,
        "timeout": settings.timeout,
        "api_base": settings.resolved_api_base(),
        "api_key": settings.api_key,
        "num_retries": 0,
        "max_retries": 0,
    }

    litellm.drop_params = True
    retries = 0
    while True:
        logger.info(
            "LLM call: model=%s, msgs=%d (attempt %d/%d)",
            kwargs["model"], len(messages), retries + 1, settings.max_retries + 1,
        )
        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as exc:
            if _is_network_error(exc) and retries < settings.max_retries:
                retries += 1
                delay = settings.backoff_base * (2 ** (retries - 1))
                logger.warning(
                    "Network error from completion endpoint, retrying in %.0fs (retry %d/%d): %s",
                    delay, retries, settings.max_retries, exc,
                )
                await sleep(delay)
                continue

            error_type, message = _classify(exc)
            logger.error("LLM error (%s): %s", error_type, message)
            if retries >= settings.max_retries and error_type == "network_error":
                logger.info("Maximum retry attempts reached, using mock insight response")
            return _fallback(message, error_type, retries)

        text = _response_text(response)
        if text is None:
            logger.error("Empty response from completion endpoint")
            return _fallback("Empty response from completion endpoint", "api_error", retries)

        logger.info("LLM response: %d chars", len(text))
        return CompletionResult(
            text=text,
            source="live",
            metadata={"source": "live", "model": kwargs["model"], "retry_attempts": retries},
            raw=response,
        )
