"""Tool registry for tool_calls mode

Tools are declared with a JSON-schema-style ``input_schema`` and a handler.
The registry validates required arguments before dispatch; anything beyond
that is the handler's own responsibility.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .schemas import ToolSpec

logger = logging.getLogger(__name__)


@dataclass
class ToolExecutionResult:
    """Outcome of one tool invocation"""

    ok: bool
    output: str = ""
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


ToolHandler = Callable[[Dict[str, Any], Any], Any]


@dataclass
class ToolDefinition:
    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: ToolHandler

    def to_spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description, input_schema=self.input_schema)


class ToolRegistry:
    """Named tools available to the builder"""

    def __init__(self, tools: Optional[List[ToolDefinition]] = None):
        self._tools: Dict[str, ToolDefinition] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def list(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def describe(self) -> List[ToolSpec]:
        """Declarations to send with a provider request"""
        return [tool.to_spec() for tool in self._tools.values()]

    def execute(self, name: str, args: Optional[Dict[str, Any]] = None, context: Any = None) -> ToolExecutionResult:
        """Run a tool by name

        Unknown tools, missing required arguments and handler exceptions come
        back as ``ok=False`` results so the model can see and react to them.
        """
        tool = self._tools.get(name)
        if tool is None:
            return ToolExecutionResult(ok=False, error=f"Unknown tool: {name}")

        args = args or {}
        if not isinstance(args, dict):
            return ToolExecutionResult(ok=False, error=f"Arguments for {name} must be an object")
        missing = [key for key in tool.input_schema.get("required", []) if key not in args]
        if missing:
            return ToolExecutionResult(ok=False, error=f"Missing required arguments for {name}: {', '.join(missing)}")

        try:
            result = tool.handler(args, context)
        except Exception as e:
            logger.warning(f"[Tools] {name} failed: {e}")
            return ToolExecutionResult(ok=False, error=str(e))

        if isinstance(result, ToolExecutionResult):
            return result
        if isinstance(result, dict):
            return ToolExecutionResult(ok=True, output=str(result.get("output", "")), data=result)
        return ToolExecutionResult(ok=True, output="" if result is None else str(result))
