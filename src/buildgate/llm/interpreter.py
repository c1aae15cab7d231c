"""Freeform interpreter: builder prose to patch operations.

The runner only depends on the PatchInterpreter protocol. The bundled
ProviderPatchInterpreter tries, in order:
1. A direct parse of the text as a patch payload
2. Targeted prose conversion ("Update `a.py`: replace `X` with `Y`")
3. A provider call with the interpreter prompt, plus stricter retries
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from ..exceptions import PatchParseError, ProviderError
from ..patch_model import PatchFormat, PatchOperation
from ..schemas import ProviderMessage, ProviderRequest
from .parsers import is_targeted_freeform, parse_patch_output, parse_targeted_freeform
from .prompts import build_interpreter_prompt
from .providers import Provider

logger = logging.getLogger(__name__)


class PatchInterpreter(Protocol):
    """Converts raw builder output into a patch set for ``patch_format``.

    Raises:
        PatchParseError: when the text cannot be converted.
    """

    def interpret(self, raw: str, patch_format: PatchFormat) -> List[PatchOperation]:
        ...


class ProviderPatchInterpreter:
    """PatchInterpreter backed by a (usually cheaper) model"""

    def __init__(
        self,
        provider: Optional[Provider] = None,
        max_retries: int = 1,
        temperature: float = 0.0,
        max_tokens: Optional[int] = None,
    ):
        self.provider = provider
        self.max_retries = max(0, max_retries)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.calls = 0

    def interpret(self, raw: str, patch_format: PatchFormat) -> List[PatchOperation]:
        patch_format = PatchFormat(patch_format)
        try:
            return parse_patch_output(raw, patch_format)
        except PatchParseError as e:
            direct_error = e

        if is_targeted_freeform(raw):
            try:
                operations = parse_targeted_freeform(raw)
                logger.info("[Interpreter] Converted targeted prose into %d replace operations", len(operations))
                return operations
            except PatchParseError as e:
                logger.debug("[Interpreter] Targeted prose conversion failed: %s", e)

        if self.provider is None:
            raise PatchParseError(f"Interpreter could not convert output: {direct_error}")

        last_error: Exception = direct_error
        for attempt in range(self.max_retries + 1):
            strict = attempt > 0
            request = ProviderRequest(
                messages=[
                    ProviderMessage(
                        role="system",
                        content=build_interpreter_prompt(patch_format, strict=strict, error=str(last_error)),
                    ),
                    ProviderMessage(role="user", content=raw),
                ],
                response_format={"type": "json"},
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            self.calls += 1
            try:
                response = self.provider.generate(request)
            except ProviderError as e:
                raise PatchParseError(f"Interpreter provider failed: {e}")

            try:
                operations = parse_patch_output(response.message.content, patch_format)
            except PatchParseError as e:
                last_error = e
                logger.warning(
                    "[Interpreter] Attempt %d/%d produced invalid output: %s",
                    attempt + 1,
                    self.max_retries + 1,
                    e,
                )
                continue
            logger.info("[Interpreter] Converted prose into %d operations (attempt %d)", len(operations), attempt + 1)
            return operations

        raise PatchParseError(f"Interpreter output invalid after {self.max_retries + 1} attempts: {last_error}")
