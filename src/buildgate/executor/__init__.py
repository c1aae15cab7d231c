"""Executor subpackage: builder run orchestration.

- tool_loop: model/tool round trips for tool_calls mode
- builder_runner: BuilderRunner state machine
"""

from buildgate.executor.builder_runner import (BuilderRunner, RetryState,
                                               next_retry_state)
from buildgate.executor.tool_loop import LoopResult, ToolLoop

__all__ = [
    "BuilderRunner",
    "LoopResult",
    "RetryState",
    "ToolLoop",
    "next_retry_state",
]
