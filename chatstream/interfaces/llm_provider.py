"""
LLM provider interface.

Defines the contract for streaming chat completions and one-shot
generations. Implementations: LiteLLM (OpenAI, Bedrock, Anthropic, etc.)

Every call made through a provider must be preceded by a rate gate
authorization; see chatstream.services.gated_llm.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, Union


# ===========================================
# Stream Events
# ===========================================


@dataclass
class TextChunk:
    text: str


@dataclass
class ReasoningChunk:
    text: str


@dataclass
class ToolCallChunk:
    """A complete tool call (arguments fully accumulated)."""

    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass
class FinishChunk:
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)


StreamEvent = Union[TextChunk, ReasoningChunk, ToolCallChunk, FinishChunk]


@dataclass
class GeneratedText:
    """Result of a non-streaming generation."""

    text: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class GeneratedImage:
    """Result of an image generation, base64 encoded."""

    b64_data: str
    headers: dict[str, str] = field(default_factory=dict)


class ChatStream(ABC):
    """An open streaming completion."""

    headers: dict[str, str]

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        pass

    async def aclose(self) -> None:
        """Release the underlying connection."""
        return None


# ===========================================
# Provider
# ===========================================


class ILLMProvider(ABC):
    """Abstract interface for LLM providers."""

    @abstractmethod
    def get_model_name(self) -> str:
        """
        Get the human-readable provider name.

        Returns:
            Name string for logging/display
        """
        pass

    @abstractmethod
    async def open_stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]] = None,
        system: Optional[str] = None,
    ) -> ChatStream:
        """
        Open a streaming chat completion.

        Args:
            model: Provider model string
            messages: OpenAI-format chat messages
            tools: OpenAI-format tool definitions
            system: Optional system prompt

        Returns:
            ChatStream whose headers carry the provider response metadata

        Raises:
            UpstreamRateLimitError: Provider rejected the call with 429
            UpstreamError: Any other provider failure
        """
        pass

    @abstractmethod
    async def generate_text(
        self,
        model: str,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 600,
    ) -> GeneratedText:
        """
        Generate text in one shot.

        Raises:
            UpstreamRateLimitError: Provider rejected the call with 429
            UpstreamError: Any other provider failure
        """
        pass

    def supports_image_generation(self) -> bool:
        """Check if the provider can generate images."""
        return False

    async def generate_image(self, model: str, prompt: str) -> GeneratedImage:
        """Generate an image. Providers without image support raise UpstreamError."""
        from chatstream.core.exceptions import UpstreamError

        raise UpstreamError(f"{self.get_model_name()} does not support image generation")
