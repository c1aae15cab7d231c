"""Core patch application engine.

This module handles:
- Sequential application of create / replace / delete operations
- Workspace isolation (no writes outside the workspace root)
- Exact-then-whitespace search block replacement with ambiguity rejection
- Rollback snapshots for callers that want to undo a run
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..exceptions import PatchApplyError
from ..patch_model import CreatePatch, DeletePatch, PatchOperation, ReplacePatch
from .matching import EXACT, locate, splice, trim_replacement

logger = logging.getLogger(__name__)

AMBIGUOUS_MESSAGE = "Ambiguous search block. Provide more context."


@dataclass
class PatchApplyResult:
    """Files touched by a successful apply() call, in application order."""

    touched: List[str] = field(default_factory=list)


@dataclass
class RollbackEntry:
    file: str
    resolved: Path
    existed: bool
    content: Optional[str] = None


@dataclass
class RollbackPlan:
    entries: List[RollbackEntry] = field(default_factory=list)


def _read_text(path: Path) -> str:
    # newline="" keeps CRLF files byte-identical through read/modify/write.
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def _write_text(path: Path, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


def resolve_workspace_path(workspace: Path, file_path: str) -> Path:
    """Resolve a relative patch path, refusing anything outside the workspace."""
    root = workspace.resolve()
    resolved = (root / file_path).resolve()
    try:
        resolved.relative_to(root)
    except ValueError:
        raise PatchApplyError(
            f"Path is outside workspace root: {file_path}",
            error="outside_workspace",
            details={"file": file_path},
        )
    return resolved


def replace_once(content: str, search: str, replace: str, file_path: str = "") -> str:
    """Replace the single occurrence of ``search`` in ``content``.

    Raises:
        PatchApplyError: ``ambiguous_match`` when more than one occurrence is
            found, ``missing_target`` when none is found under either strategy.
    """
    result = locate(content, search)
    if result.ambiguous:
        raise PatchApplyError(
            f"{AMBIGUOUS_MESSAGE} ({len(result.spans)} {result.strategy} matches in {file_path or 'file'})",
            error="ambiguous_match",
            details={"file": file_path, "matches": len(result.spans), "strategy": result.strategy},
        )
    if not result.unique:
        raise PatchApplyError(
            f"Search block not found in file (missing target): {file_path or 'file'}",
            error="missing_target",
            details={"file": file_path},
        )
    if result.strategy != EXACT:
        logger.info("[PatchApplier] Applied whitespace-normalized match in %s", file_path)
        replace = trim_replacement(search, replace)
    return splice(content, result.spans[0], replace)


class PatchApplier:
    """Applies patch operations to files under a workspace root.

    Operations run strictly in list order and each one sees the file state
    left by the previous one. The first failure aborts the remaining
    operations; operations already applied stay applied.
    """

    def __init__(self, workspace: Path, validate_file: Optional[Callable[[Path], None]] = None):
        """Initialize applier

        Args:
            workspace: Workspace root path
            validate_file: Optional hook called with each written file path;
                it may raise to abort the apply.
        """
        self.workspace = Path(workspace)
        self.validate_file = validate_file

    def apply(self, operations: Sequence[PatchOperation]) -> PatchApplyResult:
        touched: List[str] = []
        for op in operations:
            resolved = resolve_workspace_path(self.workspace, op.file)
            if isinstance(op, CreatePatch):
                self._create(op, resolved)
            elif isinstance(op, DeletePatch):
                self._delete(op, resolved)
            elif isinstance(op, ReplacePatch):
                self._replace(op, resolved)
            else:
                raise PatchApplyError(f"Unsupported patch operation: {op!r}", error="schema_invalid")
            touched.append(op.file)

        logger.info(
            "[PatchApplier] Applied %d operations to %d files",
            len(operations),
            len(set(touched)),
            extra={"event": "patch_applied", "touched_files": touched},
        )
        return PatchApplyResult(touched=touched)

    def _create(self, op: CreatePatch, resolved: Path) -> None:
        resolved.parent.mkdir(parents=True, exist_ok=True)
        _write_text(resolved, op.content)
        logger.debug("[PatchApplier] Wrote %s (%d chars)", op.file, len(op.content))
        if self.validate_file:
            self.validate_file(resolved)

    def _delete(self, op: DeletePatch, resolved: Path) -> None:
        if not resolved.is_file():
            raise PatchApplyError(
                f"Cannot delete {op.file}: no such file (missing target)",
                error="missing_target",
                details={"file": op.file},
            )
        resolved.unlink()
        logger.debug("[PatchApplier] Deleted %s", op.file)

    def _replace(self, op: ReplacePatch, resolved: Path) -> None:
        if not resolved.is_file():
            raise PatchApplyError(
                f"ENOENT: no such file for replace (missing target): {op.file}",
                error="missing_target",
                details={"file": op.file},
            )
        content = _read_text(resolved)
        updated = replace_once(content, op.search_block, op.replace_block, op.file)
        _write_text(resolved, updated)
        if self.validate_file:
            self.validate_file(resolved)

    def create_rollback(self, operations: Sequence[PatchOperation]) -> RollbackPlan:
        """Snapshot every target so rollback() can restore it."""
        entries: List[RollbackEntry] = []
        seen = set()
        for op in operations:
            if op.file in seen:
                continue
            seen.add(op.file)
            resolved = resolve_workspace_path(self.workspace, op.file)
            if resolved.is_file():
                entries.append(
                    RollbackEntry(
                        file=op.file,
                        resolved=resolved,
                        existed=True,
                        content=_read_text(resolved),
                    )
                )
            else:
                entries.append(RollbackEntry(file=op.file, resolved=resolved, existed=False))
        return RollbackPlan(entries=entries)

    def rollback(self, plan: RollbackPlan) -> None:
        for entry in plan.entries:
            if entry.existed:
                entry.resolved.parent.mkdir(parents=True, exist_ok=True)
                _write_text(entry.resolved, entry.content or "")
            elif entry.resolved.exists():
                entry.resolved.unlink()
            logger.info("[PatchApplier] Rolled back %s", entry.file)
