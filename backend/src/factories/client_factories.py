"""Factory functions for external API clients."""

from src.config import Settings, get_settings
from src.clients.base_llm_client import BaseLLMClient
from src.clients.litellm_client import LiteLLMClient
from src.exceptions import InvalidModelError


def _validate_model(model: str, settings: Settings) -> None:
    """Raise InvalidModelError if model is not in the allowed list."""
    if not settings.is_model_allowed(model):
        allowed = settings.get_allowed_models_list()
        provider = model.split("/", 1)[0] if "/" in model else "unknown"
        raise InvalidModelError(model=model, provider=provider, valid_models=allowed)


def get_llm_client(model: str | None = None) -> BaseLLMClient:
    """
    Create LLM client for specified LiteLLM model.

    Args:
        model: LiteLLM-format model string (e.g. "openai/gpt-4o-mini").
               Uses default_llm_model from settings if None.

    Raises:
        InvalidModelError: If model is not in the allowed list
    """
    settings = get_settings()

    if model is None:
        model = settings.default_llm_model

    _validate_model(model, settings)

    return LiteLLMClient(model=model, timeout=float(settings.llm_call_timeout_seconds))
