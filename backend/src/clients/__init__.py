"""External API clients."""

from src.clients.base_llm_client import BaseLLMClient
from src.clients.litellm_client import LiteLLMClient

__all__ = [
    "BaseLLMClient",
    "LiteLLMClient",
]
