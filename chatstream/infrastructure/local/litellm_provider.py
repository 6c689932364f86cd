"""
LiteLLM provider implementation.

Supports OpenAI, Anthropic, Bedrock and other providers via LiteLLM.
Includes support for custom endpoints (api_base) for proxy servers.
Provider response headers (rate-limit metadata) are surfaced on every
result so callers can feed them to the rate gate.
"""

from __future__ import annotations

import json
import os
from typing import Any, AsyncIterator, Optional

from chatstream.core.config import get_settings
from chatstream.core.exceptions import UpstreamError, UpstreamRateLimitError
from chatstream.core.logger import logger
from chatstream.interfaces.llm_provider import (
    ChatStream,
    FinishChunk,
    GeneratedImage,
    GeneratedText,
    ILLMProvider,
    ReasoningChunk,
    StreamEvent,
    TextChunk,
    ToolCallChunk,
)


def _response_headers(response: Any) -> dict[str, str]:
    """Extract provider response headers from a LiteLLM response object."""
    hidden = getattr(response, "_hidden_params", None) or {}
    headers = hidden.get("additional_headers") or getattr(response, "_response_headers", None) or {}
    return {str(k): str(v) for k, v in dict(headers).items()}


def _map_error(error: Exception) -> UpstreamError:
    import litellm

    if isinstance(error, litellm.RateLimitError):
        response = getattr(error, "response", None)
        headers = dict(getattr(response, "headers", None) or {})
        return UpstreamRateLimitError(f"Upstream rate limited: {error}", headers=headers)
    return UpstreamError(f"Upstream call failed: {error}")


class LiteLLMChatStream(ChatStream):
    """Adapts a LiteLLM streaming response to StreamEvents."""

    def __init__(self, response: Any):
        self._response = response
        self.headers = _response_headers(response)

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[StreamEvent]:
        # Tool call fragments arrive keyed by index; arguments are streamed JSON text
        pending: dict[int, dict[str, Any]] = {}
        finish_reason = "stop"
        usage: dict[str, int] = {}

        try:
            async for chunk in self._response:
                chunk_usage = getattr(chunk, "usage", None)
                if chunk_usage:
                    usage = {
                        "promptTokens": int(getattr(chunk_usage, "prompt_tokens", 0) or 0),
                        "completionTokens": int(getattr(chunk_usage, "completion_tokens", 0) or 0),
                    }
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta

                reasoning = getattr(delta, "reasoning_content", None)
                if reasoning:
                    yield ReasoningChunk(text=reasoning)
                if getattr(delta, "content", None):
                    yield TextChunk(text=delta.content)

                for call in getattr(delta, "tool_calls", None) or []:
                    entry = pending.setdefault(call.index or 0, {"id": None, "name": "", "arguments": ""})
                    if call.id:
                        entry["id"] = call.id
                    if call.function is not None:
                        if call.function.name:
                            entry["name"] = call.function.name
                        if call.function.arguments:
                            entry["arguments"] += call.function.arguments

                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except Exception as e:
            raise _map_error(e) from e

        for index in sorted(pending):
            entry = pending[index]
            try:
                args = json.loads(entry["arguments"]) if entry["arguments"] else {}
            except json.JSONDecodeError:
                logger.warning(f"Discarding malformed tool arguments for {entry['name']}")
                args = {}
            yield ToolCallChunk(
                tool_call_id=entry["id"] or f"call_{index}",
                tool_name=entry["name"],
                args=args if isinstance(args, dict) else {},
            )

        yield FinishChunk(finish_reason=finish_reason, usage=usage)

    async def aclose(self) -> None:
        close = getattr(self._response, "aclose", None)
        if close is not None:
            try:
                await close()
            except Exception as e:
                logger.debug(f"Closing upstream stream failed: {e}")


class LiteLLMProvider(ILLMProvider):
    """LiteLLM provider with custom endpoint support."""

    def __init__(
        self,
        api_base: Optional[str] = None,
        api_key: Optional[str] = None,
    ):
        """
        Initialize LiteLLM provider.

        Args:
            api_base: Custom API endpoint URL (optional, for proxy servers)
                     Note: Do NOT include /v1 suffix - LiteLLM adds it automatically
            api_key: Custom API key (optional, overrides default)
        """
        self._settings = get_settings()
        self._api_base = api_base or self._settings.LITELLM_API_BASE or None
        self._api_key = api_key or self._settings.LITELLM_API_KEY or None

        if self._settings.DEBUG:
            os.environ.setdefault("LITELLM_LOG", "INFO")

    def _base_kwargs(self, model: str) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"model": model}
        if self._api_base:
            kwargs["api_base"] = self._api_base
        if self._api_key:
            kwargs["api_key"] = self._api_key
        return kwargs

    def get_model_name(self) -> str:
        """Get human-readable provider name."""
        if self._api_base:
            return f"LiteLLM @ {self._api_base}"
        return "LiteLLM"

    async def open_stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]] = None,
        system: Optional[str] = None,
    ) -> ChatStream:
        import litellm

        kwargs = self._base_kwargs(model)
        kwargs["messages"] = ([{"role": "system", "content": system}] if system else []) + messages
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}
        if tools:
            kwargs["tools"] = tools

        logger.info(f"Opening stream: {model} ({len(messages)} messages, {len(tools or [])} tools)")
        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            raise _map_error(e) from e
        return LiteLLMChatStream(response)

    async def generate_text(
        self,
        model: str,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 600,
    ) -> GeneratedText:
        import litellm

        kwargs = self._base_kwargs(model)
        kwargs["messages"] = ([{"role": "system", "content": system}] if system else []) + [
            {"role": "user", "content": prompt}
        ]
        kwargs["max_tokens"] = max_tokens

        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            raise _map_error(e) from e

        text = (response.choices[0].message.content or "").strip()
        return GeneratedText(text=text, headers=_response_headers(response))

    def supports_image_generation(self) -> bool:
        return True

    async def generate_image(self, model: str, prompt: str) -> GeneratedImage:
        import litellm

        kwargs = self._base_kwargs(model)
        kwargs["prompt"] = prompt
        kwargs["response_format"] = "b64_json"

        try:
            response = await litellm.aimage_generation(**kwargs)
        except Exception as e:
            raise _map_error(e) from e

        data = response.data[0] if response.data else None
        b64 = getattr(data, "b64_json", None) if data is not None else None
        if not b64:
            raise UpstreamError("Image generation returned no data")
        return GeneratedImage(b64_data=b64, headers=_response_headers(response))
