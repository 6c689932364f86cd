"""
Rate-gated access to the LLM provider.

Every upstream call goes through `RateGate.authorize()` first, and the
provider's response metadata is fed back through `RateGate.observe()`
before the result is handed to the caller.
"""

from __future__ import annotations

from typing import Any, Optional

from chatstream.core.exceptions import RateLimitedError, UpstreamRateLimitError
from chatstream.core.logger import setup_logger
from chatstream.interfaces.llm_provider import ChatStream, GeneratedImage, GeneratedText, ILLMProvider
from chatstream.services.rate_gate import RateGate, RateLimitSignal

logger = setup_logger(__name__)

# Applied when the provider answers 429 without a retry hint
DEFAULT_RETRY_AFTER_SECONDS = 5.0


class GatedLLM:
    """Provider handle that enforces the shared rate budget."""

    def __init__(self, provider: ILLMProvider, gate: RateGate):
        self.provider = provider
        self.gate = gate

    def _observe_rejection(self, error: UpstreamRateLimitError) -> None:
        signal = RateLimitSignal.from_headers(error.headers)
        if signal.retry_after is None:
            signal = RateLimitSignal(
                retry_after=DEFAULT_RETRY_AFTER_SECONDS,
                remaining=signal.remaining,
                reset_after=signal.reset_after,
            )
        self.gate.observe(signal)

    async def open_stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]] = None,
        system: Optional[str] = None,
    ) -> ChatStream:
        self.gate.authorize()
        try:
            stream = await self.provider.open_stream(model, messages, tools=tools, system=system)
        except UpstreamRateLimitError as e:
            self._observe_rejection(e)
            raise
        try:
            self.gate.observe(RateLimitSignal.from_headers(stream.headers))
        except RateLimitedError:
            await stream.aclose()
            raise
        return stream

    async def generate_text(
        self,
        model: str,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 600,
    ) -> GeneratedText:
        self.gate.authorize()
        try:
            result = await self.provider.generate_text(model, prompt, system=system, max_tokens=max_tokens)
        except UpstreamRateLimitError as e:
            self._observe_rejection(e)
            raise
        self.gate.observe(RateLimitSignal.from_headers(result.headers))
        return result

    async def generate_image(self, model: str, prompt: str) -> GeneratedImage:
        self.gate.authorize()
        try:
            result = await self.provider.generate_image(model, prompt)
        except UpstreamRateLimitError as e:
            self._observe_rejection(e)
            raise
        self.gate.observe(RateLimitSignal.from_headers(result.headers))
        return result
