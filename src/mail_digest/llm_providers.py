"""Provider-specific adapters for calling different LLM APIs."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, replace
from typing import Dict

import httpx

from .config import LLMConfig


LOGGER = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an assistant that summarizes email content. Extract the key topics, "
    "important information, and action items. Organize the summary by topic areas."
)


class LLMProviderError(RuntimeError):
    """Raised when an LLM provider call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class GenerationRequest:
    """A single completion request, with per-call overrides already resolved."""

    prompt: str
    system: str
    model: str
    max_tokens: int
    temperature: float


class BaseLLMProvider(abc.ABC):
    """Abstract base class for provider-specific adapters."""

    def __init__(self, config: LLMConfig) -> None:
        self._config = config
        self._timeout = config.request_timeout

    @abc.abstractmethod
    def generate(self, request: GenerationRequest) -> str:
        """Generate a completion for the provided request."""

    def _post_json(self, url: str, headers: Dict[str, str], payload: Dict) -> Dict:
        try:
            response = httpx.post(url, headers=headers, json=payload, timeout=self._timeout)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise LLMProviderError(f"LLM request failed: {exc}", status_code=status) from exc
        except httpx.HTTPError as exc:
            raise LLMProviderError(f"LLM request failed: {exc}") from exc
        except ValueError as exc:
            raise LLMProviderError(f"LLM response was not valid JSON: {exc}") from exc


class OpenAICompatibleProvider(BaseLLMProvider):
    """Shared handler for OpenAI-style chat completion APIs."""

    def __init__(self, config: LLMConfig, endpoint_suffix: str = "/v1/chat/completions") -> None:
        super().__init__(config)
        base_url = config.endpoint.rstrip("/")
        self._url = f"{base_url}{endpoint_suffix}"

    def generate(self, request: GenerationRequest) -> str:
        payload = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [
                {"role": "system", "content": request.system},
                {"role": "user", "content": request.prompt},
            ],
        }

        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }

        LOGGER.debug("Calling OpenAI-compatible endpoint %s", self._url)
        data = self._post_json(self._url, headers, payload)
        try:
            return data["choices"][0]["message"]["content"].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise LLMProviderError(f"Unexpected response format: {data}") from exc


class OpenAIProvider(OpenAICompatibleProvider):
    def __init__(self, config: LLMConfig) -> None:
        super().__init__(config, endpoint_suffix="/v1/chat/completions")


class DeepSeekProvider(OpenAICompatibleProvider):
    def __init__(self, config: LLMConfig) -> None:
        # If the user left the OpenAI default endpoint, swap to DeepSeek's public endpoint.
        if config.endpoint.rstrip("/") == "https://api.openai.com":
            config = replace(config, endpoint="https://api.deepseek.com")
        super().__init__(config, endpoint_suffix="/v1/chat/completions")


class QwenProvider(OpenAICompatibleProvider):
    def __init__(self, config: LLMConfig) -> None:
        endpoint = config.endpoint.rstrip("/")
        if endpoint == "https://api.openai.com":
            config = replace(config, endpoint="https://dashscope.aliyuncs.com")
        super().__init__(config, endpoint_suffix="/compatible-mode/v1/chat/completions")


class ByteDanceProvider(OpenAICompatibleProvider):
    """ByteDance Ark/Doubao OpenAI-compatible endpoint."""

    def __init__(self, config: LLMConfig) -> None:
        endpoint = config.endpoint.rstrip("/")
        if endpoint == "https://api.openai.com":
            config = replace(config, endpoint="https://ark.cn-beijing.volces.com")
        super().__init__(config, endpoint_suffix="/api/v3/chat/completions")


class AnthropicProvider(BaseLLMProvider):
    """Adapter for Claude (Anthropic) Messages API."""

    def __init__(self, config: LLMConfig) -> None:
        super().__init__(config)
        base = config.endpoint.rstrip("/")
        if base in {"", "https://api.openai.com"}:
            base = "https://api.anthropic.com"
        self._url = f"{base}/v1/messages"

    def generate(self, request: GenerationRequest) -> str:
        payload = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "system": request.system,
            "messages": [
                {
                    "role": "user",
                    "content": [{"type": "text", "text": request.prompt}],
                }
            ],
        }

        headers = {
            "x-api-key": self._config.api_key,
            "anthropic-version": self._config.anthropic_version,
            "content-type": "application/json",
        }

        LOGGER.debug("Calling Anthropic endpoint %s", self._url)
        data = self._post_json(self._url, headers, payload)
        try:
            parts = data.get("content") or []
            if not isinstance(parts, list):
                raise TypeError(f"content is {type(parts).__name__}, expected list")
            text = "".join(part.get("text", "") for part in parts if part.get("type") == "text")
            return text.strip()
        except (TypeError, AttributeError) as exc:
            raise LLMProviderError(f"Unexpected Anthropic response format: {data}") from exc


__all__ = [
    "AnthropicProvider",
    "BaseLLMProvider",
    "ByteDanceProvider",
    "DEFAULT_SYSTEM_PROMPT",
    "DeepSeekProvider",
    "GenerationRequest",
    "LLMProviderError",
    "OpenAIProvider",
    "QwenProvider",
]
