"""LiteLLM-based LLM client with unified multi-provider support.

Routes to any LiteLLM-supported provider via model prefix (e.g. openai/gpt-4o-mini,
anthropic/claude-3-5-haiku-latest). Providers without native schema-constrained
decoding get the JSON schema injected into the system prompt instead.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import litellm
from openai.types.chat import ChatCompletionMessageParam
from pydantic import BaseModel

from src.clients.base_llm_client import BaseLLMClient
from src.exceptions import LLMTimeoutError
from src.utils.logger import get_logger, get_request_id, truncate

T = TypeVar("T", bound=BaseModel)

log = get_logger(__name__)

# Providers that support native Pydantic response_format (schema-constrained decoding).
NATIVE_STRUCTURED_OUTPUT_PROVIDERS: frozenset[str] = frozenset({"openai", "anthropic", "google"})


def provider_from_model(model: str) -> str:
    """Extract provider prefix from a LiteLLM model string."""
    return model.split("/", 1)[0] if "/" in model else "openai"


def _inject_schema(
    messages: list[ChatCompletionMessageParam],
    response_format: type[BaseModel],
) -> list[dict[str, Any]]:
    """Append JSON schema instructions to the system message for prompt-based structured output."""
    schema = json.dumps(response_format.model_json_schema(), indent=2)
    suffix = (
        "\n\nRespond with a single valid JSON object matching this exact schema:\n"
        f"{schema}\n"
        "Output ONLY the JSON object. No markdown fences, no explanation."
    )
    patched: list[dict[str, Any]] = []
    injected = False
    for msg in messages:
        if msg.get("role") == "system" and not injected:  # type: ignore[union-attr]
            content = msg["content"]  # type: ignore[index]
            if not isinstance(content, str):
                raise TypeError(
                    f"Schema injection requires string system message, got {type(content)}"
                )
            patched.append({**msg, "content": content + suffix})
            injected = True
        else:
            patched.append(dict(msg))  # type: ignore[arg-type]
    if not injected:
        patched.insert(0, {"role": "system", "content": suffix.lstrip()})
    return patched


class LiteLLMClient(BaseLLMClient):
    """Unified LLM client backed by LiteLLM."""

    def __init__(self, model: str = "openai/gpt-4o-mini", timeout: float = 60.0):
        self._model = model
        self.default_timeout = timeout

    @property
    def provider_name(self) -> str:
        return provider_from_model(self._model)

    @property
    def model(self) -> str:
        return self._model

    @asynccontextmanager
    async def _timeout(self, seconds: float):
        try:
            async with asyncio.timeout(seconds):
                yield
        except asyncio.TimeoutError:
            raise LLMTimeoutError(provider=self.provider_name, timeout_seconds=seconds)

    async def generate_structured(
        self,
        messages: list[ChatCompletionMessageParam],
        response_format: type[T],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> T:
        model_to_use = model or self._model
        effective_timeout = timeout if timeout is not None else self.default_timeout
        provider = provider_from_model(model_to_use)
        native = provider in NATIVE_STRUCTURED_OUTPUT_PROVIDERS

        log.debug(
            "litellm structured request",
            model=model_to_use,
            response_format=response_format.__name__,
            native_structured=native,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=effective_timeout,
        )

        call_kwargs: dict[str, Any] = {
            "model": model_to_use,
            "metadata": {"request_id": get_request_id()},
        }
        if temperature is not None:
            call_kwargs["temperature"] = temperature
        if max_tokens is not None:
            call_kwargs["max_tokens"] = max_tokens
        if native:
            call_kwargs["messages"] = messages
            call_kwargs["response_format"] = response_format
        else:
            call_kwargs["messages"] = _inject_schema(messages, response_format)
            call_kwargs["response_format"] = {"type": "json_object"}

        async with self._timeout(effective_timeout):
            response = await litellm.acompletion(**call_kwargs)  # type: ignore[arg-type]

        content = response.choices[0].message.content  # type: ignore[union-attr]
        if content is None:
            raise ValueError("Failed to parse response: empty content")

        parsed = response_format.model_validate_json(content)
        usage = getattr(response, "usage", None)

        log.debug(
            "litellm structured response",
            model=model_to_use,
            parsed=truncate(str(parsed), 500),
            total_tokens=usage.total_tokens if usage else None,
        )

        return parsed
