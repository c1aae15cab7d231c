"""buildgate: the builder stage of an LLM coding pipeline.

Turns model output into safe, unambiguous file mutations:
- BuilderRunner negotiates the output protocol and drives retries
- Output parsers and the freeform interpreter turn text into patch operations
- SafetyGuard enforces write scope, read-only paths and placeholder checks
- PatchApplier applies create / replace / delete with exact-then-whitespace
  matching that refuses ambiguous edits
"""

from buildgate.apply.engine import PatchApplier, PatchApplyResult
from buildgate.apply.policy import SafetyGuard
from buildgate.builder_config import BuilderConfig
from buildgate.exceptions import (BuildgateError, PatchApplyError,
                                  PatchParseError, ProviderError)
from buildgate.executor.builder_runner import BuilderRunner, RetryState
from buildgate.patch_model import (CreatePatch, DeletePatch, PatchFormat,
                                   ReplacePatch, RunMode)
from buildgate.schemas import ContextBundle, ContextRequest, Plan, RunResult

__version__ = "0.1.0"

__all__ = [
    "BuilderConfig",
    "BuilderRunner",
    "BuildgateError",
    "ContextBundle",
    "ContextRequest",
    "CreatePatch",
    "DeletePatch",
    "PatchApplier",
    "PatchApplyError",
    "PatchApplyResult",
    "PatchFormat",
    "PatchParseError",
    "Plan",
    "ProviderError",
    "ReplacePatch",
    "RetryState",
    "RunMode",
    "RunResult",
    "SafetyGuard",
]
