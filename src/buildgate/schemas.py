"""Schemas for Builder runs

- Architect plan and context bundle (inputs, produced upstream)
- Provider request/response shapes
- Builder run result and context requests
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .patch_model import PatchFormat, RunMode

UNKNOWN_TARGET = "unknown"


class Plan(BaseModel):
    """Architect plan guiding the builder (immutable for the run)"""

    model_config = ConfigDict(frozen=True)

    steps: List[str] = Field(default_factory=list)
    target_files: List[str] = Field(default_factory=list, description="May contain the 'unknown' sentinel")
    create_files: List[str] = Field(default_factory=list)
    risk_assessment: str = Field(default="")
    verification: List[str] = Field(default_factory=list)

    def concrete_targets(self) -> List[str]:
        """Target files without the 'unknown' sentinel"""
        return [path for path in self.target_files if path and path.strip().lower() != UNKNOWN_TARGET]


class ContextBundle(BaseModel):
    """Context payload assembled upstream.

    Opaque to the builder except for the write policy fields; unknown keys are
    kept so the whole bundle can be echoed into the prompt.
    """

    model_config = ConfigDict(extra="allow")

    request: str = Field(default="")
    serialized: Optional[str] = Field(None, description="Pre-rendered context text for the prompt")
    allow_write_paths: Optional[List[str]] = None
    read_only_paths: Optional[List[str]] = None
    delete_paths: Optional[List[str]] = Field(None, description="Paths the caller explicitly allows deleting")

    def render(self) -> str:
        if self.serialized:
            return self.serialized
        return self.model_dump_json(indent=2, exclude_none=True)


class ContextRequest(BaseModel):
    """Builder response asking for more retrieval context instead of editing"""

    reason: Optional[str] = None
    queries: List[str] = Field(default_factory=list)
    files: List[str] = Field(default_factory=list)


class ToolCall(BaseModel):
    id: str
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class ProviderMessage(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: str = Field(default="")
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)


class ToolSpec(BaseModel):
    """Tool declaration sent to the provider"""

    name: str
    description: str = Field(default="")
    input_schema: Dict[str, Any] = Field(default_factory=dict)


class Usage(BaseModel):
    input_tokens: int = Field(default=0)
    output_tokens: int = Field(default=0)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


class ProviderRequest(BaseModel):
    messages: List[ProviderMessage]
    response_format: Optional[Dict[str, Any]] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    tools: Optional[List[ToolSpec]] = None
    tool_choice: Optional[Literal["auto", "none", "required"]] = None
    stream: bool = False


class ProviderResponse(BaseModel):
    message: ProviderMessage
    tool_calls: List[ToolCall] = Field(default_factory=list)
    usage: Optional[Usage] = None


class RunResult(BaseModel):
    """Result of BuilderRunner.run()

    A non-empty ``context_request`` means nothing was applied.
    """

    final_message: ProviderMessage
    tool_calls_executed: int = Field(default=0, ge=0)
    context_request: Optional[ContextRequest] = None

    mode: RunMode
    patch_format: Optional[PatchFormat] = Field(None, description="Format that produced the applied patch set")
    touched_files: List[str] = Field(default_factory=list)
    model_calls: int = Field(default=0)
    usage: Usage = Field(default_factory=Usage)
