"""Generation backend abstraction — model-agnostic text completion.

The pipeline never talks to an LLM SDK directly. Tools call a
GenerationBackend with a prompt and a GenerationConfig and get back a
GenerationResponse whose content is *expected* (not guaranteed) to be JSON.

Providers:
  OpenAICompatibleBackend — OpenAI SDK against any chat-completions endpoint
                            (DeepSeek by default, via base_url)
  ProxyBackend            — POST {base}/llm/chat on a trusted server-side
                            proxy that holds the provider key

Also owns ReasoningSettings (backend-only config) so the pipeline itself can be
constructed without any credentials present.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("workflow_copilot.reasoning")

DEFAULT_MODEL = "deepseek-chat"
DEFAULT_BASE_URL = "https://api.deepseek.com/v1"


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GenerationConfig:
    """Sampling parameters for one backend call."""

    model: str = DEFAULT_MODEL
    temperature: float = 0.1
    max_tokens: int | None = None


@dataclass
class GenerationResponse:
    """Raw backend answer.

    usage keys (when the provider reports them):
      prompt_tokens, completion_tokens, total_tokens
    """

    content: str
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return int(self.usage.get("total_tokens", 0) or 0)


class BackendError(RuntimeError):
    """The generation backend could not produce a response.

    status_code is set when the failure came from an HTTP response.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------


class GenerationBackend(ABC):
    """Abstract base class for any text-generation provider."""

    @abstractmethod
    async def generate(self, prompt: str, config: GenerationConfig) -> GenerationResponse:
        """Send a single prompt and return the provider's text answer.

        Raises:
            BackendError: transport failure, non-2xx status or malformed envelope.
        """
        ...

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Human-readable provider/model string for logging."""
        ...

    async def close(self) -> None:
        """Release network resources. Default: nothing to release."""


# ---------------------------------------------------------------------------
# OpenAI-compatible implementation
# ---------------------------------------------------------------------------


class OpenAICompatibleBackend(GenerationBackend):
    """Backend using the OpenAI SDK against a chat-completions endpoint.

    Requires: pip install 'workflow-copilot[openai]'
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
    ) -> None:
        try:
            import openai as _openai
            self._openai = _openai
        except ImportError:
            raise ImportError(
                "The 'openai' package is required for OpenAICompatibleBackend. "
                "Install it with: pip install 'workflow-copilot[openai]'"
            )
        if not api_key:
            raise ValueError(
                "COPILOT_API_KEY is required for OpenAICompatibleBackend. "
                "Set it in your environment or .env file."
            )
        self._client = self._openai.AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._model = model
        logger.info("OpenAICompatibleBackend initialized: %s @ %s", model, base_url)

    @property
    def model_id(self) -> str:
        return f"openai-compatible/{self._model}"

    async def generate(self, prompt: str, config: GenerationConfig) -> GenerationResponse:
        kwargs: dict[str, Any] = {
            "model": config.model or self._model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": config.temperature,
        }
        if config.max_tokens:
            kwargs["max_tokens"] = config.max_tokens

        logger.debug("OpenAICompatibleBackend.generate: ~%d prompt chars", len(prompt))
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except self._openai.APIStatusError as e:
            raise BackendError(f"Backend returned HTTP {e.status_code}", e.status_code) from e
        except self._openai.OpenAIError as e:
            raise BackendError(f"Backend call failed: {e}") from e

        if not response.choices:
            raise BackendError("Backend returned no choices")
        usage: dict[str, int] = {}
        if response.usage is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return GenerationResponse(
            content=response.choices[0].message.content or "",
            usage=usage,
        )

    async def close(self) -> None:
        await self._client.close()


# ---------------------------------------------------------------------------
# Proxy implementation (httpx)
# ---------------------------------------------------------------------------


class ProxyBackend(GenerationBackend):
    """Backend that forwards prompts to a server-side LLM proxy.

    Wire format:
        POST {base_url}/llm/chat
        {"prompt": "...", "config": {"model": ..., "temperature": ..., "maxTokens": ...}}
        → {"content": "...", "usage": {...}}
    """

    def __init__(self, base_url: str, timeout: float = 60.0, model: str = DEFAULT_MODEL) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout, connect=10.0),
        )

    @property
    def model_id(self) -> str:
        return f"proxy/{self._model}"

    async def generate(self, prompt: str, config: GenerationConfig) -> GenerationResponse:
        payload = {
            "prompt": prompt,
            "config": {
                "model": config.model or self._model,
                "temperature": config.temperature,
                "maxTokens": config.max_tokens,
            },
        }
        try:
            r = await self._client.post("/llm/chat", json=payload)
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("POST /llm/chat -> %s", e.response.status_code)
            raise BackendError(
                f"API proxy error: {e.response.status_code}", e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            logger.error("POST /llm/chat failed: %s", e)
            raise BackendError(f"API proxy unreachable: {e}") from e

        try:
            data = r.json()
        except ValueError as e:
            raise BackendError("Invalid JSON envelope from API proxy") from e
        if not isinstance(data, dict):
            raise BackendError("Invalid response structure from API proxy. Expected an object.")

        usage = data.get("usage") or {}
        return GenerationResponse(
            content=str(data.get("content") or ""),
            usage={
                "prompt_tokens": int(usage.get("promptTokens", 0) or 0),
                "completion_tokens": int(usage.get("completionTokens", 0) or 0),
                "total_tokens": int(usage.get("totalTokens", 0) or 0),
            },
        )

    async def close(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Backend settings
# ---------------------------------------------------------------------------


class ReasoningSettings(BaseSettings):
    """Settings for the generation backend.

    Environment variables:
      COPILOT_BACKEND       — "openai" | "proxy" | "none" (default: "openai")
      COPILOT_MODEL         — model name (default: deepseek-chat)
      COPILOT_API_KEY       — provider key for the openai backend
      COPILOT_API_BASE_URL  — chat-completions base URL (default: DeepSeek)
      COPILOT_PROXY_URL     — base URL of the LLM proxy for the proxy backend
      COPILOT_BACKEND_TIMEOUT — HTTP timeout in seconds (default: 60)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    provider: str = Field(default="openai", validation_alias="COPILOT_BACKEND")
    model: str = Field(default=DEFAULT_MODEL, validation_alias="COPILOT_MODEL")
    api_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias="COPILOT_API_KEY",
        repr=False,
    )
    api_base_url: str = Field(default=DEFAULT_BASE_URL, validation_alias="COPILOT_API_BASE_URL")
    proxy_url: str | None = Field(default=None, validation_alias="COPILOT_PROXY_URL")
    timeout: float = Field(default=60.0, validation_alias="COPILOT_BACKEND_TIMEOUT")

    @field_validator("provider", mode="before")
    @classmethod
    def lowercase_provider(cls, v: object) -> str:
        return str(v).lower()

    @field_validator("proxy_url", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: object) -> str | None:
        if not v:
            return None
        return str(v)

    @classmethod
    def from_env(cls) -> ReasoningSettings:
        return cls()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_backend(settings: ReasoningSettings) -> GenerationBackend | None:
    """Instantiate the configured backend, or None when it cannot be used.

    A proxy URL wins over a direct key. Returning None (instead of raising)
    lets the pipeline run on heuristics alone in local development.
    """
    match settings.provider:
        case "none" | "heuristic":
            return None
        case "proxy":
            if not settings.proxy_url:
                raise ValueError("COPILOT_PROXY_URL is required when COPILOT_BACKEND=proxy")
            return ProxyBackend(settings.proxy_url, settings.timeout, settings.model)
        case "openai" | "deepseek":
            if settings.proxy_url:
                return ProxyBackend(settings.proxy_url, settings.timeout, settings.model)
            key = settings.api_key.get_secret_value()
            if not key:
                logger.warning("No COPILOT_API_KEY configured — running on heuristics only")
                return None
            return OpenAICompatibleBackend(key, settings.api_base_url, settings.model)
        case _:
            raise ValueError(
                f"Unknown generation backend: {settings.provider!r}. "
                f"Valid options: 'openai', 'proxy', 'none'"
            )
