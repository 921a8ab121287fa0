"""LLM provider gateway: one call contract over several vendor API shapes.

Three families are supported:

* OpenAI-compatible chat completions (``openai`` and any custom provider
  with an explicit base URL);
* the native Gemini ``generateContent`` API, which has no system role and
  takes the key as a query parameter;
* Groq, OpenAI-compatible but with its own key prefix and model list.

Each adapter turns a prompt's provider settings into a request and
normalizes the vendor response back into a :class:`ProviderResponse`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from server.config import settings
from server.models.evaluation import EvaluationPrompt

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert evaluator of customer service conversations. "
    "Provide objective, consistent evaluations based on the given criteria."
)

CONNECTION_TEST_MESSAGE = "Hello! This is a test message to verify the API connection."

GEMINI_KEY_PREFIX = "AIza"

OPENAI_MODELS = ("gpt-4o", "gpt-4o-mini", "gpt-4", "gpt-4-turbo", "gpt-3.5-turbo")

GROQ_MODELS = (
    "llama-3.3-70b-versatile",
    "llama-3.1-8b-instant",
    "openai/gpt-oss-120b",
    "mixtral-8x7b-32768",
    "gemma2-9b-it",
    "gemma-7b-it",
    "llama-guard-3-8b",
    "llama3-groq-70b-8192-tool-use-preview",
    "llama3-groq-8b-8192-tool-use-preview",
)

_MISSING_KEY_VALUES = {"", "none", "null"}


class LLMError(Exception):
    """Base error for provider calls."""


class LLMConfigurationError(LLMError):
    """The prompt's provider settings can't produce a valid request."""


class LLMResponseError(LLMError):
    """The vendor call failed or returned something we can't read."""


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ProviderResponse:
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    provider: str = ""
    model: str = ""


@dataclass
class ProviderConfig:
    """Fully resolved settings for one vendor request."""
    provider: str
    model: str
    api_key: str = field(repr=False)
    base_url: str
    temperature: float = 0.0
    max_tokens: int = 1000


class ProviderAdapter(Protocol):
    """Interface every vendor family implements."""

    name: str

    def configure(self, prompt: EvaluationPrompt, api_key: str) -> ProviderConfig: ...

    async def complete(
        self, client: httpx.AsyncClient, config: ProviderConfig, messages: list[dict]
    ) -> ProviderResponse: ...


def _as_int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _describe_key(api_key: str) -> str:
    return f"{api_key[:6]}..." if api_key else "none"


class OpenAICompatibleAdapter:
    """Chat-completions providers (OpenAI, Groq, self-hosted gateways)."""

    def __init__(
        self,
        name: str,
        default_base_url: str | None = None,
        key_prefix: str | None = None,
        known_models: tuple[str, ...] = (),
    ):
        self.name = name
        self.default_base_url = default_base_url
        self.key_prefix = key_prefix
        self.known_models = known_models

    def configure(self, prompt: EvaluationPrompt, api_key: str) -> ProviderConfig:
        if self.key_prefix and not api_key.startswith(self.key_prefix):
            raise LLMConfigurationError(
                f"Invalid {self.name} API key format. Keys should start with '{self.key_prefix}'"
            )

        base_url = prompt.api_url or self.default_base_url
        if not base_url:
            raise LLMConfigurationError(
                f"Custom provider {prompt.llm_provider} requires an API URL"
            )

        if self.known_models and prompt.model not in self.known_models:
            logger.warning(
                "Model %s may not be valid for %s. Known models: %s",
                prompt.model, self.name, ", ".join(self.known_models),
            )

        return ProviderConfig(
            provider=prompt.llm_provider,
            model=prompt.model,
            api_key=api_key,
            base_url=base_url,
            temperature=prompt.temperature,
            max_tokens=prompt.max_tokens,
        )

    @staticmethod
    def endpoint(base_url: str) -> str:
        base = base_url.rstrip("/")
        if base.endswith("chat/completions"):
            return base
        return f"{base}/chat/completions"

    async def complete(
        self, client: httpx.AsyncClient, config: ProviderConfig, messages: list[dict]
    ) -> ProviderResponse:
        payload = {
            "model": config.model,
            "messages": messages,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = await client.post(self.endpoint(config.base_url), json=payload, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "%s API error: %s %s", self.name, e.response.status_code, e.response.text[:200]
            )
            raise LLMResponseError(
                f"{self.name} API error ({e.response.status_code}): {e.response.text[:500]}"
            ) from e
        except httpx.RequestError as e:
            logger.error("%s request failed: %s", self.name, e)
            raise LLMResponseError(f"{self.name} request failed: {e}") from e

        try:
            data = resp.json()
            message = data["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMResponseError(f"Unexpected {self.name} response format") from e

        usage = data.get("usage") or {}
        return ProviderResponse(
            text=message.get("content") or "",
            usage=TokenUsage(
                prompt_tokens=_as_int(usage.get("prompt_tokens")),
                completion_tokens=_as_int(usage.get("completion_tokens")),
                total_tokens=_as_int(usage.get("total_tokens")),
            ),
            provider=config.provider,
            model=config.model,
        )


def to_gemini_contents(messages: list[dict]) -> list[dict]:
    """Translate chat messages into Gemini ``contents``.

    Gemini has no system role: system text is merged into the first user
    turn, and ``assistant`` becomes ``model``.
    """
    contents: list[dict] = []
    for msg in messages:
        if msg["role"] == "user":
            contents.append({"role": "user", "parts": [{"text": msg["content"]}]})
        elif msg["role"] == "assistant":
            contents.append({"role": "model", "parts": [{"text": msg["content"]}]})

    system = next((m["content"] for m in messages if m["role"] == "system"), None)
    if system:
        first_user = next((c for c in contents if c["role"] == "user"), None)
        if first_user is not None:
            first_user["parts"][0]["text"] = f"{system}\n\n{first_user['parts'][0]['text']}"
    return contents


class GeminiAdapter:
    name = "gemini"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta/"

    def configure(self, prompt: EvaluationPrompt, api_key: str) -> ProviderConfig:
        base_url = prompt.api_url or self.default_base_url
        if not base_url.endswith("/"):
            base_url += "/"
        return ProviderConfig(
            provider=prompt.llm_provider,
            model=prompt.model,
            api_key=api_key,
            base_url=base_url,
            temperature=prompt.temperature,
            max_tokens=prompt.max_tokens,
        )

    async def complete(
        self, client: httpx.AsyncClient, config: ProviderConfig, messages: list[dict]
    ) -> ProviderResponse:
        url = f"{config.base_url}models/{config.model}:generateContent"
        body = {
            "contents": to_gemini_contents(messages),
            "generationConfig": {
                "temperature": config.temperature,
                "maxOutputTokens": config.max_tokens,
            },
        }
        try:
            resp = await client.post(
                url,
                params={"key": config.api_key},
                json=body,
                headers={"Content-Type": "application/json"},
            )
        except httpx.RequestError as e:
            logger.error("Gemini request failed: %s", type(e).__name__)
            raise LLMResponseError(f"Gemini request failed: {type(e).__name__}") from e

        if resp.status_code == 403:
            raise LLMConfigurationError(
                "Gemini API access denied. Please check your API key permissions."
            )
        if resp.status_code == 404:
            raise LLMConfigurationError(
                "Gemini API endpoint not found. Please verify your API key and model name. "
                f"Using endpoint: {config.base_url}"
            )
        if resp.status_code >= 400:
            logger.error("Gemini API error: %s %s", resp.status_code, resp.text[:200])
            raise LLMResponseError(f"Gemini API error ({resp.status_code}): {resp.text[:500]}")

        try:
            data = resp.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMResponseError("Unexpected Gemini API response format") from e

        meta = data.get("usageMetadata") or {}
        return ProviderResponse(
            text=text or "",
            usage=TokenUsage(
                prompt_tokens=_as_int(meta.get("promptTokenCount")),
                completion_tokens=_as_int(meta.get("candidatesTokenCount")),
                total_tokens=_as_int(meta.get("totalTokenCount")),
            ),
            provider=config.provider,
            model=config.model,
        )


PROVIDERS: dict[str, ProviderAdapter] = {
    "openai": OpenAICompatibleAdapter(
        "openai", "https://api.openai.com/v1", key_prefix="sk-", known_models=OPENAI_MODELS
    ),
    "groq": OpenAICompatibleAdapter(
        "groq", "https://api.groq.com/openai/v1", key_prefix="gsk_", known_models=GROQ_MODELS
    ),
    "gemini": GeminiAdapter(),
}


def get_adapter(provider: str) -> ProviderAdapter:
    """Adapter for a provider id; unknown ids are treated as custom
    OpenAI-compatible endpoints."""
    adapter = PROVIDERS.get(provider)
    if adapter is None:
        return OpenAICompatibleAdapter(provider)
    return adapter


def resolve_api_key(prompt: EvaluationPrompt) -> str:
    """The prompt's own key, else the server-wide key for its vendor."""
    candidates = [prompt.api_key]
    fallback = {
        "gemini": settings.gemini_api_key,
        "groq": settings.groq_api_key,
    }.get(prompt.llm_provider, settings.openai_api_key)
    candidates.append(fallback)

    for key in candidates:
        if key and key.strip().lower() not in _MISSING_KEY_VALUES:
            return key.strip()

    raise LLMConfigurationError(
        f"No valid API key available for provider {prompt.llm_provider}. "
        "Please ensure the API key is set in the prompt configuration."
    )


def build_messages(rendered_prompt: str, system_prompt: str | None = SYSTEM_PROMPT) -> list[dict]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": rendered_prompt})
    return messages


class LLMGateway:
    """Single entry point the job processor uses for every vendor call."""

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout if timeout is not None else settings.llm_timeout_seconds
        self.transport = transport

    async def call(
        self,
        prompt: EvaluationPrompt,
        rendered_prompt: str,
        system_prompt: str | None = SYSTEM_PROMPT,
    ) -> ProviderResponse:
        """Send a rendered prompt with the prompt's provider settings.

        Raises:
            LLMConfigurationError: before any network I/O when the key, key
                format or base URL is wrong, or when the vendor reports a
                permission/endpoint problem.
            LLMResponseError: on transport errors, non-2xx responses or an
                unreadable body.
        """
        adapter = get_adapter(prompt.llm_provider)
        config = adapter.configure(prompt, resolve_api_key(prompt))

        logger.debug(
            "LLM call provider=%s model=%s base=%s key=%s",
            config.provider, config.model, config.base_url, _describe_key(config.api_key),
        )

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await adapter.complete(
                client, config, build_messages(rendered_prompt, system_prompt)
            )


async def check_connection(
    llm_provider: str,
    model: str,
    api_key: str,
    api_url: str | None = None,
    gateway: LLMGateway | None = None,
) -> dict:
    """Send a short message to verify a provider/model/key combination."""
    if llm_provider == "gemini" and not api_key.startswith(GEMINI_KEY_PREFIX):
        raise LLMConfigurationError(
            f"Invalid gemini API key format. Keys should start with '{GEMINI_KEY_PREFIX}'"
        )

    probe = EvaluationPrompt(
        id="connection-test",
        name="connection-test",
        prompt_template="",
        llm_provider=llm_provider,
        model=model,
        api_url=api_url,
        api_key=api_key,
        temperature=0.0,
        max_tokens=10,
    )
    gateway = gateway or LLMGateway()
    response = await gateway.call(probe, CONNECTION_TEST_MESSAGE, system_prompt=None)
    return {
        "success": True,
        "message": f"{llm_provider} API connection test successful",
        "response": {
            "model": model,
            "provider": llm_provider,
            "usage": {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            },
            "content_preview": response.text[:100],
        },
    }
