"""Port for structured-output LLM providers used by the design generator."""

from abc import ABC, abstractmethod
from typing import Optional, TypeVar

from openai.types.chat import ChatCompletionMessageParam
from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class BaseLLMClient(ABC):
    """A provider that can answer a chat prompt with a validated Pydantic model.

    Tier parameters (temperature, token ceiling) are passed per call because
    one client instance serves every quality tier.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str: ...

    @property
    @abstractmethod
    def model(self) -> str: ...

    @abstractmethod
    async def generate_structured(
        self,
        messages: list[ChatCompletionMessageParam],
        response_format: type[T],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> T:
        """Return ``response_format`` parsed from the model's reply.

        Raises LLMTimeoutError when the call exceeds ``timeout`` (or the
        client default), and pydantic.ValidationError on a malformed reply.
        """
