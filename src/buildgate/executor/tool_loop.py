"""Tool-call loop for tool_calls mode.

Each step is one model call with the registry's tools declared. A response
without tool calls ends the loop; otherwise every call is executed and its
result is fed back as a ``tool`` message before the next step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from ..exceptions import ToolLoopError
from ..llm.parsers import extract_tool_calls
from ..llm.providers import Provider
from ..schemas import ProviderMessage, ProviderRequest, ProviderResponse, Usage
from ..tools import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class LoopResult:
    final_message: ProviderMessage
    messages: List[ProviderMessage]
    tool_calls_executed: int = 0
    model_calls: int = 0
    usage: Usage = field(default_factory=Usage)


class ToolLoop:
    def __init__(
        self,
        provider: Provider,
        tools: ToolRegistry,
        max_steps: int,
        max_tool_calls: int,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tool_context: Any = None,
    ):
        self.provider = provider
        self.tools = tools
        self.max_steps = max_steps
        self.max_tool_calls = max_tool_calls
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.tool_context = tool_context
        self.model_calls = 0
        self.tool_calls_executed = 0
        self.usage = Usage()

    def run(self, messages: List[ProviderMessage]) -> LoopResult:
        """Drive the loop from ``messages`` until a terminal response.

        Provider errors propagate unchanged so the caller can decide whether
        they mean "tools unsupported".

        Raises:
            ToolLoopError: ``tool_limit_exceeded`` or ``step_limit_exceeded``.
        """
        history = list(messages)
        self.tool_calls_executed = 0
        self.model_calls = 0
        self.usage = Usage()
        tool_specs = self.tools.describe()

        for _ in range(self.max_steps):
            self.model_calls += 1
            response: ProviderResponse = self.provider.generate(
                ProviderRequest(
                    messages=history,
                    tools=tool_specs,
                    tool_choice="auto",
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                )
            )
            if response.usage:
                self.usage = self.usage + response.usage

            calls = extract_tool_calls(response)
            if not calls:
                return LoopResult(
                    final_message=response.message,
                    messages=history,
                    tool_calls_executed=self.tool_calls_executed,
                    model_calls=self.model_calls,
                    usage=self.usage,
                )

            history.append(
                ProviderMessage(role="assistant", content=response.message.content, tool_calls=calls)
            )
            for call in calls:
                if self.tool_calls_executed >= self.max_tool_calls:
                    raise ToolLoopError(
                        f"Tool call limit exceeded ({self.max_tool_calls})",
                        error="tool_limit_exceeded",
                    )
                result = self.tools.execute(call.name, call.args, self.tool_context)
                self.tool_calls_executed += 1
                logger.debug(
                    "[Builder] Tool %s -> %s",
                    call.name,
                    "ok" if result.ok else "error",
                    extra={"event": "tool_call", "tool": call.name, "ok": result.ok},
                )
                history.append(
                    ProviderMessage(
                        role="tool",
                        tool_call_id=call.id,
                        name=call.name,
                        content=result.output if result.ok else f"ERROR: {result.error}",
                    )
                )

        raise ToolLoopError(f"Step limit exceeded ({self.max_steps}) without a final response", error="step_limit_exceeded")
