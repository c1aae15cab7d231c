"""Builder runner: model output to applied patches.

Drives one builder run end to end:
1. Model call(s) in the configured RunMode, with lane history prepended
2. Output negotiation per mode:
   - tool_calls: tool loop; downgrade to patch_json when the provider does
     not support tools or when the model executes no tool at all
   - freeform: the raw text goes to the interpreter
   - patch_json: direct parse, one schema-repair retry per format, one
     file_writes -> search_replace fallback (RetryState)
3. SafetyGuard policy check (fatal, never retried)
4. PatchApplier (fatal, never retried)

Maximum model calls in patch_json: 4 (file_writes, repair, search_replace,
repair). A run either returns a RunResult (patch applied or context
requested) or raises PatchApplyError.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence

from ..apply.engine import PatchApplier
from ..apply.policy import SafetyGuard
from ..builder_config import BuilderConfig
from ..context_lanes import ContextManager
from ..exceptions import PatchApplyError, PatchParseError, ToolLoopError, is_tools_unsupported_error
from ..llm.interpreter import PatchInterpreter
from ..llm.parsers import is_targeted_freeform, parse_context_request, parse_patch_output
from ..llm.prompts import build_schema_repair_prompt, build_system_prompt, build_user_prompt
from ..llm.providers import Provider
from ..logging_config import correlation_id_var
from ..patch_model import PatchFormat, PatchOperation, RunMode
from ..schemas import (
    ContextBundle,
    ContextRequest,
    Plan,
    ProviderMessage,
    ProviderRequest,
    ProviderResponse,
    RunResult,
    Usage,
)
from ..tools import ToolRegistry
from .tool_loop import ToolLoop

logger = logging.getLogger(__name__)

JSON_RESPONSE_FORMAT = {"type": "json"}


class RetryState(str, Enum):
    """patch_json attempt being made.

    INITIAL -> SCHEMA_RETRY -> FORMAT_FALLBACK -> SCHEMA_RETRY -> FAILED
    (the fallback leg only when the run started in file_writes).
    """

    INITIAL = "initial"
    SCHEMA_RETRY = "schema_retry"
    FORMAT_FALLBACK = "format_fallback"
    FAILED = "failed"


def next_retry_state(current: RetryState, patch_format: PatchFormat, fallback_used: bool) -> RetryState:
    """Transition after a failed patch_json attempt."""
    if current in (RetryState.INITIAL, RetryState.FORMAT_FALLBACK):
        return RetryState.SCHEMA_RETRY
    if current == RetryState.SCHEMA_RETRY and patch_format == PatchFormat.FILE_WRITES and not fallback_used:
        return RetryState.FORMAT_FALLBACK
    return RetryState.FAILED


@dataclass
class _RunState:
    """Mutable bookkeeping for a single run()"""

    run_id: str
    plan: Plan
    bundle: ContextBundle
    mode: RunMode
    patch_format: PatchFormat
    user_prompt: str
    context_manager: Optional[ContextManager] = None
    lane_id: Optional[str] = None
    model: Optional[str] = None
    history: Optional[List[ProviderMessage]] = None
    model_calls: int = 0
    tool_calls_executed: int = 0
    usage: Usage = field(default_factory=Usage)


class BuilderRunner:
    """Runs the builder stage for one plan at a time

    Collaborators are injected; the runner owns only the protocol
    negotiation and the order of validation and application.
    """

    def __init__(
        self,
        provider: Provider,
        tools: Optional[ToolRegistry] = None,
        config: Optional[BuilderConfig] = None,
        patch_applier: Optional[PatchApplier] = None,
        interpreter: Optional[PatchInterpreter] = None,
        context_manager: Optional[ContextManager] = None,
        lane_id: Optional[str] = None,
        model: Optional[str] = None,
        tool_context: Any = None,
    ):
        """Initialize runner

        Args:
            provider: Model provider used for every builder call
            tools: Tool registry for tool_calls mode
            config: Run options (defaults to BuilderConfig())
            patch_applier: Applier bound to the workspace root
            interpreter: Prose-to-patch converter (freeform mode, targeted prose)
            context_manager: Lane history store
            lane_id: Lane to replay and append to
            model: Model name passed to the context manager
            tool_context: Opaque object handed to every tool handler
        """
        if patch_applier is None:
            raise ValueError("BuilderRunner requires a patch_applier")
        self.provider = provider
        self.tools = tools
        self.config = config or BuilderConfig()
        self.patch_applier = patch_applier
        self.interpreter = interpreter
        self.context_manager = context_manager
        self.lane_id = lane_id
        self.model = model
        self.tool_context = tool_context
        self.guard = SafetyGuard(self.config.extra_read_only_paths)

    def run(
        self,
        plan: Plan,
        bundle: ContextBundle,
        *,
        context_manager: Optional[ContextManager] = None,
        lane_id: Optional[str] = None,
        model: Optional[str] = None,
    ) -> RunResult:
        """Execute one builder run.

        Raises:
            PatchApplyError: the only failure channel; ``.error`` classifies it.
        """
        run_id = uuid.uuid4().hex[:12]
        token = correlation_id_var.set(run_id)
        state = _RunState(
            run_id=run_id,
            plan=plan,
            bundle=bundle,
            mode=self.config.mode,
            patch_format=self.config.patch_format,
            user_prompt=build_user_prompt(plan, bundle),
            context_manager=context_manager or self.context_manager,
            lane_id=lane_id or self.lane_id,
            model=model or self.model,
        )
        logger.info(
            "[Builder] Run %s started (mode=%s, format=%s)",
            run_id,
            state.mode.value,
            state.patch_format.value,
            extra={"event": "builder_run_started", "mode": state.mode.value, "patch_format": state.patch_format.value},
        )
        try:
            return self._dispatch(state)
        except PatchApplyError as e:
            logger.error(
                "[Builder] Run %s failed (%s): %s",
                run_id,
                e.error,
                e,
                extra={"event": "builder_run_failed", "error_code": e.error, "model_calls": state.model_calls},
            )
            raise
        finally:
            correlation_id_var.reset(token)

    # ------------------------------------------------------------------
    # Mode dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, state: _RunState) -> RunResult:
        if state.mode == RunMode.TOOL_CALLS:
            result = self._run_tool_calls(state)
            if result is not None:
                return result
            state.mode = RunMode.PATCH_JSON
        if state.mode == RunMode.FREEFORM:
            return self._run_freeform(state)
        return self._run_patch_json(state)

    def _run_tool_calls(self, state: _RunState) -> Optional[RunResult]:
        """Tool loop; returns None when the run must continue in patch_json."""
        if self.tools is None or not self.tools.list():
            logger.info("[Builder] No tools registered; using patch_json")
            return None

        loop = ToolLoop(
            provider=self.provider,
            tools=self.tools,
            max_steps=self.config.max_steps,
            max_tool_calls=self.config.max_tool_calls,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            tool_context=self.tool_context,
        )
        messages = self._build_messages(state, RunMode.TOOL_CALLS, state.patch_format)
        try:
            loop_result = loop.run(messages)
        except ToolLoopError as e:
            self._count_loop(state, loop)
            raise PatchApplyError(str(e), error=e.error) from e
        except PatchApplyError:
            raise
        except Exception as e:
            self._count_loop(state, loop)
            if is_tools_unsupported_error(e):
                logger.warning(
                    "[Builder] Provider does not support tools (%s); switching to patch_json",
                    e,
                    extra={"event": "builder_mode_downgrade", "reason": "tools_unsupported"},
                )
                return None
            raise PatchApplyError(f"Provider call failed: {e}", error="provider_error") from e

        self._count_loop(state, loop)
        final = loop_result.final_message

        context_request = parse_context_request(final.content, strict=False)
        if context_request is not None:
            return self._finish(state, final, context_request=context_request)

        if loop_result.tool_calls_executed == 0:
            logger.info(
                "[Builder] Model executed no tool calls; retrying the turn in patch_json without tools",
                extra={"event": "builder_mode_downgrade", "reason": "no_tool_calls"},
            )
            return None

        return self._finish(state, final)

    def _run_freeform(self, state: _RunState) -> RunResult:
        messages = self._build_messages(state, RunMode.FREEFORM, state.patch_format)
        response = self._generate(state, messages, json_output=False)
        content = response.message.content

        context_request = parse_context_request(content, strict=False)
        if context_request is not None:
            return self._finish(state, response.message, context_request=context_request)

        if self.interpreter is None:
            raise PatchApplyError("Freeform mode requires an interpreter", error="interpreter_unavailable")
        try:
            operations = self.interpreter.interpret(content, state.patch_format)
        except PatchParseError as e:
            raise PatchApplyError(f"Interpreter could not convert builder output: {e}", error=e.error) from e

        return self._apply(state, operations, response.message, state.patch_format)

    def _run_patch_json(self, state: _RunState) -> RunResult:
        patch_format = state.patch_format
        retry_state = RetryState.INITIAL
        fallback_used = False
        messages = self._build_messages(state, RunMode.PATCH_JSON, patch_format)

        while True:
            response = self._generate(state, messages, json_output=True)
            content = response.message.content

            context_request = parse_context_request(content, strict=True)
            if context_request is not None:
                return self._finish(state, response.message, context_request=context_request)

            try:
                operations = self._parse_patch_json(content, patch_format)
            except PatchParseError as e:
                next_state = next_retry_state(retry_state, patch_format, fallback_used)
                logger.warning(
                    "[Builder] %s output rejected (%s: %s); next=%s",
                    patch_format.value,
                    e.error,
                    e,
                    next_state.value,
                    extra={
                        "event": "builder_output_invalid",
                        "error_code": e.error,
                        "retry_state": retry_state.value,
                        "next_state": next_state.value,
                    },
                )
                if next_state == RetryState.FAILED:
                    raise PatchApplyError(
                        f"Builder output invalid after retries ({patch_format.value}): {e}",
                        error=e.error,
                    ) from e

                if next_state == RetryState.SCHEMA_RETRY:
                    messages = list(messages)
                    if content.strip():
                        messages.append(ProviderMessage(role="assistant", content=content))
                    messages.append(
                        ProviderMessage(role="user", content=build_schema_repair_prompt(patch_format, str(e)))
                    )
                else:
                    fallback_used = True
                    patch_format = PatchFormat.SEARCH_REPLACE
                    messages = self._build_messages(state, RunMode.PATCH_JSON, patch_format)
                retry_state = next_state
                continue

            return self._apply(state, operations, response.message, patch_format)

    def _parse_patch_json(self, content: str, patch_format: PatchFormat) -> List[PatchOperation]:
        try:
            return parse_patch_output(content, patch_format)
        except PatchParseError:
            if not (self.config.fallback_to_interpreter and self.interpreter and is_targeted_freeform(content)):
                raise

        logger.info("[Builder] Targeted prose in patch_json output; routing to interpreter")
        try:
            return self.interpreter.interpret(content, patch_format)
        except PatchParseError as e:
            raise PatchParseError(f"Interpreter could not convert targeted prose: {e}", error=e.error) from e

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_messages(self, state: _RunState, mode: RunMode, patch_format: PatchFormat) -> List[ProviderMessage]:
        system_prompt = build_system_prompt(mode, patch_format)
        messages = [ProviderMessage(role="system", content=system_prompt)]

        if state.context_manager is not None and state.lane_id:
            if state.history is None:
                state.history = list(
                    state.context_manager.prepare(
                        state.lane_id,
                        system_prompt=system_prompt,
                        bundle=state.bundle,
                        model=state.model,
                    )
                    or []
                )
            history = state.history
            if mode == RunMode.PATCH_JSON:
                # Earlier system prompts may carry another protocol's schema.
                history = [m for m in history if m.role != "system"]
            messages.extend(history)

        messages.append(ProviderMessage(role="user", content=state.user_prompt))
        return messages

    def _generate(self, state: _RunState, messages: List[ProviderMessage], json_output: bool) -> ProviderResponse:
        request = ProviderRequest(
            messages=messages,
            response_format=JSON_RESPONSE_FORMAT if json_output else None,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            tools=None,
            tool_choice=None,
        )
        state.model_calls += 1
        try:
            response = self.provider.generate(request)
        except Exception as e:
            raise PatchApplyError(f"Provider call failed: {e}", error="provider_error") from e
        if response.usage:
            state.usage = state.usage + response.usage
        return response

    @staticmethod
    def _count_loop(state: _RunState, loop: ToolLoop) -> None:
        state.model_calls += loop.model_calls
        state.tool_calls_executed += loop.tool_calls_executed
        state.usage = state.usage + loop.usage

    def _apply(
        self,
        state: _RunState,
        operations: Sequence[PatchOperation],
        final_message: ProviderMessage,
        patch_format: PatchFormat,
    ) -> RunResult:
        self.guard.check(operations, state.plan, state.bundle)
        applied = self.patch_applier.apply(operations)
        return self._finish(state, final_message, patch_format=patch_format, touched_files=applied.touched)

    def _finish(
        self,
        state: _RunState,
        final_message: ProviderMessage,
        context_request: Optional[ContextRequest] = None,
        patch_format: Optional[PatchFormat] = None,
        touched_files: Sequence[str] = (),
    ) -> RunResult:
        self._record_lane(state, final_message, context_request)
        result = RunResult(
            final_message=final_message,
            tool_calls_executed=state.tool_calls_executed,
            context_request=context_request,
            mode=state.mode,
            patch_format=patch_format,
            touched_files=list(touched_files),
            model_calls=state.model_calls,
            usage=state.usage,
        )
        logger.info(
            "[Builder] Run %s finished: %s (%d model calls)",
            state.run_id,
            "context requested" if context_request else f"{len(result.touched_files)} files touched",
            state.model_calls,
            extra={
                "event": "builder_run_completed",
                "mode": state.mode.value,
                "model_calls": state.model_calls,
                "tool_calls_executed": state.tool_calls_executed,
                "touched_files": result.touched_files,
                "context_request": context_request is not None,
            },
        )
        return result

    def _record_lane(
        self,
        state: _RunState,
        final_message: ProviderMessage,
        context_request: Optional[ContextRequest],
    ) -> None:
        if state.context_manager is None or not state.lane_id:
            return
        base = {"run_id": state.run_id, "mode": state.mode.value}
        state.context_manager.append(
            state.lane_id,
            ProviderMessage(role="user", content=state.user_prompt),
            {**base, "kind": "prompt"},
        )
        state.context_manager.append(
            state.lane_id,
            ProviderMessage(role="assistant", content=final_message.content),
            {**base, "kind": "response", "context_request": context_request is not None},
        )
