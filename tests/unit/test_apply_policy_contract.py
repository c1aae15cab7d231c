"""Contract tests for apply/policy.py module.

Tests scope computation, read-only enforcement, placeholder detection and the
delete-intent gate.
"""

from __future__ import annotations

import pytest

from buildgate.apply.policy import (
    SafetyGuard,
    compute_allowed_paths,
    has_delete_intent,
    is_placeholder_content,
    is_placeholder_path,
    normalize_relpath,
    path_matches,
    validate_patch_paths,
)
from buildgate.exceptions import PatchApplyError
from buildgate.patch_model import CreatePatch, DeletePatch, ReplacePatch
from buildgate.schemas import ContextBundle, Plan


class TestNormalizeRelpath:
    """Tests for normalize_relpath function."""

    def test_normalizes_backslashes(self) -> None:
        """Should convert backslashes to forward slashes."""
        assert normalize_relpath("src\\buildgate\\main.py") == "src/buildgate/main.py"

    def test_strips_leading_dot_slash_and_trailing_slash(self) -> None:
        """Should strip ./ prefix and trailing /."""
        assert normalize_relpath("./docs/sds/") == "docs/sds"

    def test_handles_none(self) -> None:
        """Should return empty string for None."""
        assert normalize_relpath(None) == ""


class TestPathMatches:
    """Tests for segment-aware prefix matching."""

    def test_directory_prefix_matches_children(self) -> None:
        """Should match files under a listed directory."""
        assert path_matches("docs/sds/spec.md", ["docs/sds"])

    def test_sibling_with_shared_prefix_does_not_match(self) -> None:
        """Should not match on a partial segment."""
        assert not path_matches("docs/sdsx.md", ["docs/sds"])

    def test_exact_file_matches(self) -> None:
        """Should match an exact file entry."""
        assert path_matches("src/example.ts", ["./src/example.ts"])


class TestComputeAllowedPaths:
    """Tests for compute_allowed_paths function."""

    def test_unions_bundle_targets_and_creates(self) -> None:
        """Should combine allow_write_paths, target_files and create_files."""
        plan = Plan(target_files=["src/a.ts"], create_files=["src/new.ts"])
        bundle = ContextBundle(allow_write_paths=["docs"])
        assert compute_allowed_paths(plan, bundle) == ["docs", "src/a.ts", "src/new.ts"]

    def test_unknown_sentinel_contributes_nothing(self) -> None:
        """Should ignore the 'unknown' target sentinel."""
        plan = Plan(target_files=["unknown"])
        assert compute_allowed_paths(plan, ContextBundle(allow_write_paths=[])) == []


class TestValidatePatchPaths:
    """Tests for validate_patch_paths function."""

    def test_fail_open_without_allow_list(self) -> None:
        """Should allow any non-read-only path when nothing is scoped."""
        ok, violations = validate_patch_paths(["anything/at/all.py"], [".git"], [])
        assert ok is True
        assert violations == []

    def test_read_only_wins_over_allow_list(self) -> None:
        """Should block read-only paths even when allowed."""
        ok, violations = validate_patch_paths(["vendor/lib.js"], ["vendor"], ["vendor"])
        assert ok is False
        assert violations == ["Read-only path: vendor/lib.js"]


class TestPlaceholders:
    """Tests for placeholder detection."""

    @pytest.mark.parametrize(
        "path",
        ["path/to/file.ts", "src/path/to/module.py", "<file>", "src/<name>.ts", "{{file}}", "src/.../x.ts"],
    )
    def test_placeholder_paths(self, path: str) -> None:
        """Should flag template sentinels in paths."""
        assert is_placeholder_path(path)

    @pytest.mark.parametrize("path", ["src/example.ts", "docs/path.md", "tests/to/test_x.py"])
    def test_real_paths(self, path: str) -> None:
        """Should not flag ordinary paths."""
        assert not is_placeholder_path(path)

    @pytest.mark.parametrize("text", ["...", "…", " ... ", "// ...", "full file contents...", "<content>", "TODO"])
    def test_placeholder_content(self, text: str) -> None:
        """Should flag ellipsis and template tokens."""
        assert is_placeholder_content(text)

    @pytest.mark.parametrize("text", ["", "const a = 1;", "items = [...rest]"])
    def test_real_content(self, text: str) -> None:
        """Should accept empty and real code."""
        assert not is_placeholder_content(text)


class TestDeleteIntent:
    """Tests for has_delete_intent function."""

    def test_plan_step_names_file(self) -> None:
        """Should accept a deletion verb naming the basename."""
        plan = Plan(steps=["Delete legacy.ts now that it is unused"])
        assert has_delete_intent("src/legacy.ts", plan, ContextBundle())

    def test_bundle_request_names_path(self) -> None:
        """Should accept a request removing the full path."""
        bundle = ContextBundle(request="Remove src/old.ts, it moved to lib/")
        assert has_delete_intent("src/old.ts", Plan(), bundle)

    def test_generic_remove_files_step(self) -> None:
        """Should not treat a generic "remove ... files" step as intent for any file."""
        plan = Plan(steps=["Remove unused imports from the service files"], target_files=["unknown"])
        assert not has_delete_intent("src/example.ts", plan, ContextBundle())

    def test_basename_inside_other_name(self) -> None:
        """Should not match the basename inside a longer file name."""
        plan = Plan(steps=["Delete old_example.ts"])
        assert not has_delete_intent("src/example.ts", plan, ContextBundle())

    def test_explicit_delete_paths(self) -> None:
        """Should accept paths the bundle lists for deletion."""
        assert has_delete_intent("build/out.js", Plan(), ContextBundle(delete_paths=["build"]))

    def test_no_intent(self) -> None:
        """Should reject when nothing asks for deletion."""
        plan = Plan(steps=["Update the greeting"], risk_assessment="low")
        assert not has_delete_intent("src/example.ts", plan, ContextBundle(request="Fix greeting"))


class TestSafetyGuard:
    """Tests for SafetyGuard.check."""

    def setup_method(self) -> None:
        self.guard = SafetyGuard(extra_read_only_paths=[".git"])

    def test_scope_violation(self) -> None:
        """Should reject a target outside the plan's files."""
        plan = Plan(target_files=["src/example.ts"])
        bundle = ContextBundle(allow_write_paths=[])

        with pytest.raises(PatchApplyError) as exc_info:
            self.guard.check([CreatePatch(file="src/other.ts", content="x")], plan, bundle)

        assert exc_info.value.error == "disallowed_path"
        assert "disallowed files" in str(exc_info.value)

    def test_unknown_target_fails_open(self) -> None:
        """Should accept the same patch when the plan target is unknown."""
        plan = Plan(target_files=["unknown"])
        self.guard.check([CreatePatch(file="src/other.ts", content="x")], plan, ContextBundle(allow_write_paths=[]))

    def test_read_only_rejected(self) -> None:
        """Should reject read-only targets with the disallowed-files message."""
        bundle = ContextBundle(read_only_paths=["src/generated"])

        with pytest.raises(PatchApplyError) as exc_info:
            self.guard.check([CreatePatch(file="src/generated/api.ts", content="x")], Plan(), bundle)

        assert exc_info.value.error == "read_only_path"
        assert "disallowed files" in str(exc_info.value).lower()

    def test_configured_read_only_paths(self) -> None:
        """Should apply the configured extra read-only paths."""
        with pytest.raises(PatchApplyError) as exc_info:
            self.guard.check([CreatePatch(file=".git/config", content="x")], Plan(), ContextBundle())
        assert exc_info.value.error == "read_only_path"

    def test_placeholder_path_rejected(self) -> None:
        """Should reject echoed template paths."""
        with pytest.raises(PatchApplyError) as exc_info:
            self.guard.check([CreatePatch(file="path/to/file.ts", content="x")], Plan(), ContextBundle())
        assert exc_info.value.error == "placeholder_path"

    def test_placeholder_content_rejected(self) -> None:
        """Should reject ellipsis search/replace blocks."""
        op = ReplacePatch(file="src/example.ts", search_block="...", replace_block="...")
        with pytest.raises(PatchApplyError) as exc_info:
            self.guard.check([op], Plan(), ContextBundle())
        assert exc_info.value.error == "placeholder_content"

    def test_delete_without_intent(self) -> None:
        """Should reject deletes the plan never asked for."""
        plan = Plan(target_files=["src/example.ts"], steps=["Tweak constant"])
        with pytest.raises(PatchApplyError) as exc_info:
            self.guard.check([DeletePatch(file="src/example.ts")], plan, ContextBundle())
        assert exc_info.value.error == "delete_without_intent"
        assert "delete action without delete intent" in str(exc_info.value)

    def test_generic_file_cleanup_does_not_allow_delete(self) -> None:
        """Should reject a delete when the plan only talks about files in general."""
        plan = Plan(steps=["Remove unused imports from the service files"], target_files=["unknown"])
        with pytest.raises(PatchApplyError) as exc_info:
            self.guard.check([DeletePatch(file="src/example.ts")], plan, ContextBundle())
        assert exc_info.value.error == "delete_without_intent"

    def test_empty_patch_set(self) -> None:
        """Should reject an empty operation list."""
        with pytest.raises(PatchApplyError) as exc_info:
            self.guard.check([], Plan(), ContextBundle())
        assert exc_info.value.error == "empty_patch_set"
