"""Write policy for builder patch sets.

This module handles:
- Allowed-write-path computation from the context bundle and the plan
- Read-only path enforcement (always wins over the allow list)
- Placeholder detection for echoed schema examples (paths and blocks)
- Delete-intent gating
"""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from ..exceptions import PatchApplyError
from ..patch_model import CreatePatch, DeletePatch, PatchOperation, ReplacePatch
from ..schemas import ContextBundle, Plan

logger = logging.getLogger(__name__)

# Template sentinels a model copies out of the schema instead of a real path.
PLACEHOLDER_PATH_PATTERNS = [
    re.compile(r"(?:^|/)path/to(?:/|$)", re.IGNORECASE),
    re.compile(r"<[^<>]*>"),
    re.compile(r"\{\{[^{}]*\}\}"),
    re.compile(r"(?:^|/)(?:\.{3}|…)(?:/|$)"),
    re.compile(r"(?:^|/)your[_-]?(?:file|path|module)\b", re.IGNORECASE),
]

PLACEHOLDER_CONTENT_TOKENS = {
    "...",
    "…",
    "<...>",
    "[...]",
    "{...}",
    "// ...",
    "# ...",
    "/* ... */",
    "<!-- ... -->",
    "todo",
    "placeholder",
    "<placeholder>",
    "<content>",
    "<code>",
    "full file contents",
    "full file contents...",
    "existing code",
    "// existing code",
    "# existing code",
    "rest of file",
    "rest of the file unchanged",
}

ELLIPSIS_ONLY = re.compile(r"[.…\s]+")

DELETE_VERBS = re.compile(r"\b(?:delete[sd]?|deleting|remov(?:e|es|ed|ing)|rm|drop(?:s|ped|ping)?)\b", re.IGNORECASE)


def normalize_relpath(path: object) -> str:
    """
    Normalize relative paths for scope comparison.

    Scope paths may come from Windows-style strings (backslashes) while patch
    paths are POSIX-style.

    Args:
        path: Path string or Path object

    Returns:
        Normalized relative path string (no trailing slash)
    """
    s = str(path or "").strip()
    s = s.replace("\\", "/")
    while s.startswith("./"):
        s = s[2:]
    s = s.lstrip("/")
    s = re.sub(r"/{2,}", "/", s)
    return s.rstrip("/")


def path_matches(file_path: str, entries: Iterable[str]) -> bool:
    """True when ``file_path`` equals an entry or lives under it.

    Matching is per path segment: ``docs/sds`` covers ``docs/sds/spec.md`` but
    not ``docs/sdsx.md``.
    """
    normalized = normalize_relpath(file_path)
    for entry in entries:
        prefix = normalize_relpath(entry)
        if not prefix:
            continue
        if normalized == prefix or normalized.startswith(prefix + "/"):
            return True
    return False


def compute_allowed_paths(plan: Plan, bundle: ContextBundle) -> List[str]:
    """Allowed-write-path set for a run.

    ``allow_write_paths`` from the bundle, plus the plan's concrete target
    files (the "unknown" sentinel contributes nothing) and planned new files.
    An empty result means the architect gave no scoping signal.
    """
    allowed: List[str] = []
    for path in list(bundle.allow_write_paths or []) + plan.concrete_targets() + list(plan.create_files):
        norm = normalize_relpath(path)
        if norm and norm not in allowed:
            allowed.append(norm)
    return allowed


def compute_read_only_paths(bundle: ContextBundle, extra: Sequence[str] = ()) -> List[str]:
    read_only: List[str] = []
    for path in list(bundle.read_only_paths or []) + list(extra):
        norm = normalize_relpath(path)
        if norm and norm not in read_only:
            read_only.append(norm)
    return read_only


def is_placeholder_path(file_path: str) -> bool:
    return any(pattern.search(file_path) for pattern in PLACEHOLDER_PATH_PATTERNS)


def is_placeholder_content(text: Optional[str]) -> bool:
    """True for blocks that are only an ellipsis or a template token.

    Empty strings are legitimate (empty files, deleting a block) and pass.
    """
    if text is None:
        return False
    stripped = text.strip()
    if not stripped:
        return False
    if ELLIPSIS_ONLY.fullmatch(stripped):
        return True
    return stripped.lower() in PLACEHOLDER_CONTENT_TOKENS


def has_delete_intent(file_path: str, plan: Plan, bundle: ContextBundle) -> bool:
    """Whether the plan or bundle asks for ``file_path`` to be deleted.

    Either the bundle lists it in ``delete_paths``, or a plan step, the risk
    assessment or the bundle request uses a deletion verb together with the
    file itself (full path or basename). A generic "remove files" never
    counts.
    """
    if bundle.delete_paths and path_matches(file_path, bundle.delete_paths):
        return True

    names = {normalize_relpath(file_path), posixpath.basename(normalize_relpath(file_path))}
    mentions = [re.compile(r"(?<![\w./-])" + re.escape(name) + r"(?![\w/-])") for name in names if name]
    texts = list(plan.steps) + [plan.risk_assessment, bundle.request]
    for text in texts:
        if not text or not DELETE_VERBS.search(text):
            continue
        if any(mention.search(text) for mention in mentions):
            return True
    return False


def _operation_blocks(op: PatchOperation) -> List[Tuple[str, str]]:
    if isinstance(op, ReplacePatch):
        return [("search_block", op.search_block), ("replace_block", op.replace_block)]
    if isinstance(op, CreatePatch):
        return [("content", op.content)]
    return []


def validate_patch_paths(
    files: List[str],
    read_only_paths: List[str],
    allowed_paths: List[str],
) -> Tuple[bool, List[str]]:
    """
    Validate that a patch set stays out of read-only paths and inside scope.

    Args:
        files: Target paths of the patch set
        read_only_paths: Path prefixes that may never be written
        allowed_paths: Allowed paths/prefixes; empty means fail-open

    Returns:
        Tuple of (is_valid, list of violations)
    """
    violations = []

    for file_path in files:
        if path_matches(file_path, read_only_paths):
            violations.append(f"Read-only path: {file_path}")
            logger.warning(f"[Scope] BLOCKED: Patch attempts to modify read-only path: {file_path}")

    if allowed_paths:
        for file_path in files:
            if path_matches(file_path, read_only_paths):
                continue
            if not path_matches(file_path, allowed_paths):
                violations.append(f"Outside scope: {file_path}")
                logger.warning(f"[Scope] BLOCKED: Patch attempts to modify file outside scope: {file_path}")

    if violations:
        logger.error(f"[Scope] Patch rejected - {len(violations)} violations (read-only + scope)")
        return False, violations

    return True, []


class SafetyGuard:
    """Fail-closed policy gate between parsing and PatchApplier.

    Each check raises PatchApplyError; nothing here is retried.
    """

    def __init__(self, extra_read_only_paths: Sequence[str] = ()):
        self.extra_read_only_paths = list(extra_read_only_paths)

    def check(self, operations: Sequence[PatchOperation], plan: Plan, bundle: ContextBundle) -> None:
        if not operations:
            raise PatchApplyError("Builder produced an empty patch set", error="empty_patch_set")

        for op in operations:
            if is_placeholder_path(op.file):
                raise PatchApplyError(
                    f"Patch targets a placeholder path: {op.file}",
                    error="placeholder_path",
                    details={"file": op.file},
                )
            for field_name, block in _operation_blocks(op):
                if is_placeholder_content(block):
                    raise PatchApplyError(
                        f"Patch for {op.file} has placeholder {field_name}: {block.strip()!r}",
                        error="placeholder_content",
                        details={"file": op.file, "field": field_name},
                    )

        files = [op.file for op in operations]
        read_only = compute_read_only_paths(bundle, self.extra_read_only_paths)
        allowed = compute_allowed_paths(plan, bundle)
        is_valid, violations = validate_patch_paths(files, read_only, allowed)
        if not is_valid:
            read_only_hits = [v for v in violations if v.startswith("Read-only")]
            raise PatchApplyError(
                "Builder patch targets disallowed files: " + "; ".join(violations),
                error="read_only_path" if read_only_hits else "disallowed_path",
                details={"violations": violations, "allowed": allowed, "read_only": read_only},
            )

        for op in operations:
            if isinstance(op, DeletePatch) and not has_delete_intent(op.file, plan, bundle):
                raise PatchApplyError(
                    f"delete action without delete intent: {op.file}",
                    error="delete_without_intent",
                    details={"file": op.file},
                )

        logger.debug(
            "[Scope] Patch set passed policy (%d operations, allow-list=%s)",
            len(operations),
            "fail-open" if not allowed else len(allowed),
        )
