"""Anthropic Claude provider for builder runs

Translates ProviderRequest into a Messages API call:
- system-role messages become the ``system`` parameter
- assistant tool calls become ``tool_use`` blocks, tool results become
  ``tool_result`` blocks on a user turn
- response text blocks are concatenated; ``tool_use`` blocks become ToolCalls
"""

import logging
import os
from typing import Any, Dict, List, Optional

import anthropic
from anthropic import Anthropic

from ..exceptions import ProviderError
from ..schemas import ProviderMessage, ProviderRequest, ProviderResponse, ToolCall, Usage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5"
DEFAULT_MAX_TOKENS = 8192

JSON_ONLY_HINT = "Respond with a single JSON object only."

_TOOL_CHOICE = {"auto": {"type": "auto"}, "none": {"type": "none"}, "required": {"type": "any"}}


class AnthropicProvider:
    """Provider implementation using the Anthropic Claude API"""

    name = "anthropic"

    def __init__(
        self,
        client: Optional[Any] = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        api_key: Optional[str] = None,
    ):
        """Initialize Anthropic provider

        Args:
            client: Pre-built client (anything with ``messages.create``)
            model: Model id used for every call
            max_tokens: Default completion budget when the request has none
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
        """
        self.client = client or Anthropic(api_key=api_key or os.getenv("ANTHROPIC_API_KEY"))
        self.model = model
        self.max_tokens = max_tokens

    def generate(self, request: ProviderRequest) -> ProviderResponse:
        kwargs = self._build_kwargs(request)
        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIStatusError as e:
            raise ProviderError(f"Anthropic API error: {e.message}", status_code=e.status_code)
        except anthropic.APIError as e:
            raise ProviderError(f"Anthropic API error: {e}")

        return self._parse_response(response)

    def _build_kwargs(self, request: ProviderRequest) -> Dict[str, Any]:
        system_parts = [m.content for m in request.messages if m.role == "system" and m.content]
        if request.response_format and request.response_format.get("type") in ("json", "json_object"):
            system_parts.append(JSON_ONLY_HINT)

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": request.max_tokens or self.max_tokens,
            "messages": self._convert_messages(request.messages),
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.tools:
            kwargs["tools"] = [
                {"name": tool.name, "description": tool.description, "input_schema": tool.input_schema or {"type": "object"}}
                for tool in request.tools
            ]
            if request.tool_choice:
                kwargs["tool_choice"] = _TOOL_CHOICE[request.tool_choice]
        if request.stream:
            logger.debug("[Anthropic] Streaming not used for builder calls; issuing a blocking request")
        return kwargs

    @staticmethod
    def _convert_messages(messages: List[ProviderMessage]) -> List[Dict[str, Any]]:
        converted: List[Dict[str, Any]] = []
        for message in messages:
            if message.role == "system":
                continue

            if message.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id or "",
                    "content": message.content,
                }
                # Consecutive tool results share one user turn.
                last = converted[-1] if converted else None
                if last and last["role"] == "user" and isinstance(last["content"], list):
                    last["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
                continue

            if message.role == "assistant" and message.tool_calls:
                blocks: List[Dict[str, Any]] = []
                if message.content:
                    blocks.append({"type": "text", "text": message.content})
                for call in message.tool_calls:
                    blocks.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.args})
                converted.append({"role": "assistant", "content": blocks})
                continue

            converted.append({"role": message.role, "content": message.content})
        return converted

    @staticmethod
    def _parse_response(response: Any) -> ProviderResponse:
        text_parts: List[str] = []
        tool_calls: List[ToolCall] = []
        for block in getattr(response, "content", None) or []:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                text_parts.append(block.text)
            elif block_type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, args=dict(block.input or {})))

        usage = None
        raw_usage = getattr(response, "usage", None)
        if raw_usage is not None:
            usage = Usage(
                input_tokens=getattr(raw_usage, "input_tokens", 0) or 0,
                output_tokens=getattr(raw_usage, "output_tokens", 0) or 0,
            )

        message = ProviderMessage(role="assistant", content="".join(text_parts), tool_calls=tool_calls)
        return ProviderResponse(message=message, tool_calls=tool_calls, usage=usage)
