"""Custom exceptions for the buildgate builder stage."""

from __future__ import annotations

import re
from typing import Optional

# Provider error text that means the model/provider cannot take tool declarations.
TOOLS_UNSUPPORTED_PATTERN = re.compile(
    r"(?:does\s+not|doesn'?t|do\s+not|cannot)\s+support\s+(?:tools|tool[\s_-]?(?:calls?|calling|use))"
    r"|tools?(?:[\s_-]?(?:calls?|calling|use))?\s+(?:are\s+|is\s+)?(?:not|un)\s?supported",
    re.IGNORECASE,
)


class BuildgateError(Exception):
    """Base exception for all buildgate errors."""

    pass


class PatchApplyError(BuildgateError):
    """Raised when a builder run fails.

    This is the only failure channel of a run. ``error`` is a stable,
    machine-matchable classification (``ambiguous_match``, ``missing_target``,
    ``disallowed_path``, ...); the message is for humans.
    """

    def __init__(self, message: str, error: str = "patch_apply_failed", details: Optional[dict] = None):
        """
        Initialize patch apply error.

        Args:
            message: Human readable description
            error: Classification code
            details: Optional structured context (paths, counts)
        """
        super().__init__(message)
        self.error = error
        self.details = details or {}


class PatchParseError(BuildgateError):
    """Raised when model output does not match the expected patch protocol.

    Protocol failures are recoverable by the runner (schema-repair retry,
    format fallback); they only reach callers wrapped in PatchApplyError.
    """

    def __init__(self, message: str, error: str = "schema_invalid"):
        super().__init__(message)
        self.error = error


class ProviderError(BuildgateError):
    """Exception raised by provider adapters."""

    def __init__(self, message: str, status_code: int = None):
        """
        Initialize provider error.

        Args:
            message: Error message
            status_code: Optional HTTP status code
        """
        super().__init__(message)
        self.status_code = status_code


class ToolLoopError(BuildgateError):
    """Raised when the tool-call loop exhausts its step or tool budget."""

    def __init__(self, message: str, error: str):
        super().__init__(message)
        self.error = error


def is_tools_unsupported_error(exc: BaseException) -> bool:
    """Return True when a provider error says tool calling is unsupported."""
    return bool(TOOLS_UNSUPPORTED_PATTERN.search(str(exc)))
