"""Contract tests for patch_model.py module.

Tests the patch operation vocabulary and path normalization.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from buildgate.patch_model import (
    PATCH_OPERATION_ADAPTER,
    CreatePatch,
    DeletePatch,
    FileWritesPayload,
    PatchFormat,
    ReplacePatch,
    RunMode,
    normalize_patch_path,
    operation_targets,
)


class TestNormalizePatchPath:
    """Tests for normalize_patch_path function."""

    def test_converts_backslashes(self) -> None:
        """Should convert Windows separators to forward slashes."""
        assert normalize_patch_path("src\\app\\main.py") == "src/app/main.py"

    def test_strips_leading_dot_slash(self) -> None:
        """Should strip a leading ./ prefix."""
        assert normalize_patch_path("./src/main.py") == "src/main.py"

    def test_collapses_duplicate_separators(self) -> None:
        """Should collapse repeated slashes."""
        assert normalize_patch_path("src//main.py") == "src/main.py"

    @pytest.mark.parametrize("bad", ["", "   ", "/etc/passwd", "C:\\Windows\\x.py", "../outside.py", "src/../../x.py"])
    def test_rejects_invalid_paths(self, bad: str) -> None:
        """Should reject empty, absolute and escaping paths."""
        with pytest.raises(ValueError):
            normalize_patch_path(bad)


class TestPatchOperations:
    """Tests for the discriminated PatchOperation union."""

    def test_dispatches_on_action(self) -> None:
        """Should build the model matching the action field."""
        op = PATCH_OPERATION_ADAPTER.validate_python(
            {"action": "replace", "file": "a.py", "search_block": "x", "replace_block": "y"}
        )
        assert isinstance(op, ReplacePatch)
        assert PATCH_OPERATION_ADAPTER.validate_python({"action": "delete", "file": "a.py"}) == DeletePatch(file="a.py")

    def test_replace_requires_replace_block(self) -> None:
        """Should reject a replace entry without replace_block."""
        with pytest.raises(ValidationError):
            PATCH_OPERATION_ADAPTER.validate_python({"action": "replace", "file": "a.py", "search_block": "x"})

    def test_replace_rejects_blank_search_block(self) -> None:
        """Should reject a whitespace-only search_block."""
        with pytest.raises(ValidationError):
            ReplacePatch(file="a.py", search_block="  \n", replace_block="y")

    def test_empty_replace_block_and_content_allowed(self) -> None:
        """Should allow empty replacement text and empty file content."""
        assert ReplacePatch(file="a.py", search_block="x", replace_block="").replace_block == ""
        assert CreatePatch(file="empty.txt", content="").content == ""

    def test_unknown_action_rejected(self) -> None:
        """Should reject actions outside create/replace/delete."""
        with pytest.raises(ValidationError):
            PATCH_OPERATION_ADAPTER.validate_python({"action": "rename", "file": "a.py"})

    def test_operations_are_frozen(self) -> None:
        """Should not allow mutation after construction."""
        op = DeletePatch(file="a.py")
        with pytest.raises(ValidationError):
            op.file = "b.py"


class TestFileWritesPayload:
    """Tests for FileWritesPayload conversion."""

    def test_files_become_creates_and_deletes_follow(self) -> None:
        """Should convert files to creates followed by deletes."""
        payload = FileWritesPayload.model_validate(
            {"files": [{"path": "./a.py", "content": "A"}], "delete": ["old.py"]}
        )
        ops = payload.to_operations()
        assert ops == [CreatePatch(file="a.py", content="A"), DeletePatch(file="old.py")]

    def test_operation_targets_dedupes_in_order(self) -> None:
        """Should list each target once, first-seen order."""
        ops = [DeletePatch(file="b.py"), CreatePatch(file="a.py", content=""), DeletePatch(file="b.py")]
        assert operation_targets(ops) == ["b.py", "a.py"]


def test_enums_accept_wire_values() -> None:
    """Mode and format enums should round-trip their wire strings."""
    assert RunMode("patch_json") is RunMode.PATCH_JSON
    assert PatchFormat("file_writes") is PatchFormat.FILE_WRITES
