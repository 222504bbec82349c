"""Generation backend client shared by the digest components.

One instance is built by the caller of a digest run and passed explicitly to
the summarizer, categorizer and merger.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque

from .config import LLMConfig
from .llm_providers import (
    DEFAULT_SYSTEM_PROMPT,
    AnthropicProvider,
    BaseLLMProvider,
    ByteDanceProvider,
    DeepSeekProvider,
    GenerationRequest,
    LLMProviderError,
    OpenAIProvider,
    QwenProvider,
)


LOGGER = logging.getLogger(__name__)

PROVIDER_REGISTRY = {
    "openai": OpenAIProvider,
    "deepseek": DeepSeekProvider,
    "anthropic": AnthropicProvider,
    "qwen": QwenProvider,
    "bytedance": ByteDanceProvider,
}


class RateLimiter:
    """Simple sliding-window rate limiter (requests per minute)."""

    def __init__(self, requests_per_minute: int) -> None:
        self._rpm = requests_per_minute
        self._timestamps: deque[float] = deque()
        self._lock = threading.Lock()
        self._period = 60.0

    def acquire(self) -> None:
        if self._rpm <= 0:
            return

        while True:
            with self._lock:
                now = time.monotonic()
                while self._timestamps and now - self._timestamps[0] >= self._period:
                    self._timestamps.popleft()

                if len(self._timestamps) < self._rpm:
                    self._timestamps.append(now)
                    return

                wait_time = self._period - (now - self._timestamps[0])

            time.sleep(max(wait_time, 0.05))


def build_provider(config: LLMConfig) -> BaseLLMProvider:
    provider_key = config.provider.lower()
    if provider_key == "claude":
        provider_key = "anthropic"

    try:
        provider_cls = PROVIDER_REGISTRY[provider_key]
    except KeyError as exc:
        raise ValueError(
            f"Unsupported LLM provider '{config.provider}'. "
            "Valid options: openai, deepseek, claude/anthropic, qwen, bytedance."
        ) from exc
    return provider_cls(config)


class LLMClient:
    """Facade over provider-specific implementations with rate limiting and retries."""

    def __init__(self, config: LLMConfig, provider: BaseLLMProvider | None = None) -> None:
        self._config = config
        self._provider = provider or build_provider(config)
        self._rate_limiter = RateLimiter(config.rate_limit_rpm)

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Generate text for ``prompt``.

        Unset options fall back to the configured model, token budget and
        temperature.

        Raises:
            LLMProviderError: when the provider fails and retries (if any) are exhausted.
        """
        request = GenerationRequest(
            prompt=prompt,
            system=system or DEFAULT_SYSTEM_PROMPT,
            model=model or self._config.model,
            max_tokens=max_tokens or self._config.max_tokens,
            temperature=self._config.temperature if temperature is None else temperature,
        )
        return self._call_provider_with_retry(request)

    def _call_provider_with_retry(self, request: GenerationRequest) -> str:
        """Call provider with rate limiting and optional retries on HTTP 429."""
        attempts = self._config.retry_attempts if self._config.retry_on_rate_limit else 0
        for attempt in range(attempts + 1):
            self._rate_limiter.acquire()
            try:
                return self._provider.generate(request)
            except LLMProviderError as exc:
                if exc.status_code == 429 and attempt < attempts:
                    delay = self._config.retry_base_delay * (2 ** attempt)
                    LOGGER.warning(
                        "Rate limit hit (attempt %d/%d). Retrying in %.1fs.",
                        attempt + 1,
                        attempts + 1,
                        delay,
                    )
                    time.sleep(delay)
                    continue
                raise
        raise LLMProviderError("Failed to obtain LLM response after retries.")


__all__ = ["LLMClient", "RateLimiter", "build_provider"]
