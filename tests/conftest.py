"""Pytest configuration and fixtures for buildgate tests"""

import sys
from pathlib import Path
from typing import List, Union

import pytest

# Ensure src directory is in Python path before any imports
project_root = Path(__file__).resolve().parent.parent
src_path = project_root / "src"

for path in (project_root, src_path):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from buildgate.apply.engine import PatchApplier
from buildgate.schemas import (ProviderMessage, ProviderRequest,
                               ProviderResponse, ToolCall, Usage)

ScriptItem = Union[str, ProviderResponse, Exception]


class ScriptedProvider:
    """Provider stub replaying a fixed script of responses.

    Items are plain strings (assistant text), ready ProviderResponses, or
    exceptions to raise. Every request is recorded for later assertions.
    """

    name = "scripted"

    def __init__(self, script: List[ScriptItem]):
        self.script = list(script)
        self.requests: List[ProviderRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def generate(self, request: ProviderRequest) -> ProviderResponse:
        self.requests.append(request)
        if not self.script:
            raise AssertionError("ScriptedProvider ran out of responses")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, ProviderResponse):
            return item
        return ProviderResponse(
            message=ProviderMessage(role="assistant", content=item),
            usage=Usage(input_tokens=10, output_tokens=5),
        )


def tool_call_response(*calls: ToolCall, content: str = "") -> ProviderResponse:
    return ProviderResponse(
        message=ProviderMessage(role="assistant", content=content, tool_calls=list(calls)),
        tool_calls=list(calls),
    )


@pytest.fixture
def scripted_provider():
    """Factory fixture: scripted_provider([...]) -> ScriptedProvider"""
    return ScriptedProvider


@pytest.fixture
def tool_response():
    return tool_call_response


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Workspace root with one source file"""
    src = tmp_path / "src"
    src.mkdir()
    (src / "example.ts").write_text("const a = 1;\nconst b = 2;\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def applier(workspace: Path) -> PatchApplier:
    return PatchApplier(workspace)
