"""Contract tests for llm/prompts.py module."""

from __future__ import annotations

from buildgate.llm.prompts import (
    build_interpreter_prompt,
    build_schema_repair_prompt,
    build_system_prompt,
    build_user_prompt,
)
from buildgate.patch_model import PatchFormat, RunMode
from buildgate.schemas import ContextBundle, Plan


class TestBuildSystemPrompt:
    """Tests for build_system_prompt function."""

    def test_search_replace_schema(self) -> None:
        """Should describe the patches schema."""
        prompt = build_system_prompt(RunMode.PATCH_JSON, PatchFormat.SEARCH_REPLACE)
        assert '"patches"' in prompt
        assert "search_block" in prompt

    def test_file_writes_schema(self) -> None:
        """Should describe the files schema."""
        prompt = build_system_prompt(RunMode.PATCH_JSON, PatchFormat.FILE_WRITES)
        assert '"files"' in prompt
        assert '"patches"' not in prompt

    def test_every_mode_explains_context_requests(self) -> None:
        """Should tell the model how to ask for more context."""
        for mode in RunMode:
            assert "needs_context" in build_system_prompt(mode)


def test_user_prompt_contains_plan_and_context() -> None:
    """build_user_prompt should carry the plan JSON and rendered bundle."""
    plan = Plan(steps=["Bump a"], target_files=["src/a.ts"])
    prompt = build_user_prompt(plan, ContextBundle(serialized="FILE src/a.ts\nconst a = 1;"))

    assert prompt.startswith("PLAN:")
    assert '"target_files"' in prompt
    assert "const a = 1;" in prompt


def test_repair_prompt_names_failure() -> None:
    """build_schema_repair_prompt should quote the parse error."""
    prompt = build_schema_repair_prompt(PatchFormat.SEARCH_REPLACE, "Missing 'patches' array")
    assert "Missing 'patches' array" in prompt
    assert '"patches"' in prompt


def test_interpreter_prompt_strict_variant() -> None:
    """build_interpreter_prompt should add strict instructions on retry."""
    assert "STRICT MODE" not in build_interpreter_prompt(PatchFormat.FILE_WRITES)
    assert "STRICT MODE" in build_interpreter_prompt(PatchFormat.FILE_WRITES, strict=True, error="bad")
