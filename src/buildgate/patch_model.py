"""Patch operation vocabulary

The typed shapes a builder run produces and the PatchApplier consumes:
- RunMode: how the model is asked to answer (tool calls, JSON patch, prose)
- PatchFormat: which JSON payload shape is expected in patch_json mode
- PatchOperation: create / replace / delete, discriminated on ``action``

Examples:
    CreatePatch(file="src/new_module.py", content="VALUE = 1\\n")

    ReplacePatch(
        file="src/example.py",
        search_block="VALUE = 1",
        replace_block="VALUE = 2",
    )

    DeletePatch(file="src/obsolete.py")
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class RunMode(str, Enum):
    """Output protocol requested from the model"""

    TOOL_CALLS = "tool_calls"
    PATCH_JSON = "patch_json"
    FREEFORM = "freeform"


class PatchFormat(str, Enum):
    """JSON payload shape (only meaningful for RunMode.PATCH_JSON)"""

    SEARCH_REPLACE = "search_replace"  # {"patches": [...]}
    FILE_WRITES = "file_writes"  # {"files": [{"path", "content"}]}


class PatchAction(str, Enum):
    CREATE = "create"
    REPLACE = "replace"
    DELETE = "delete"


_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:[\\/]")


def normalize_patch_path(value: str) -> str:
    """Normalize a workspace-relative patch path.

    Backslashes become ``/``, leading ``./`` is stripped and duplicate
    separators collapse. Empty, absolute and workspace-escaping paths raise
    ValueError.
    """
    if not isinstance(value, str):
        raise ValueError("file path must be a string")
    path = value.strip().replace("\\", "/")
    if not path:
        raise ValueError("file path must be a non-empty string")
    if path.startswith("/") or _WINDOWS_DRIVE.match(path):
        raise ValueError(f"file path must be workspace-relative: {value}")
    while path.startswith("./"):
        path = path[2:]
    path = re.sub(r"/{2,}", "/", path)
    if ".." in path.split("/"):
        raise ValueError(f"file path escapes the workspace: {value}")
    if not path or path == ".":
        raise ValueError("file path must name a file")
    return path


class _PatchBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    file: str

    @field_validator("file", mode="before")
    @classmethod
    def _normalize_file(cls, value: str) -> str:
        return normalize_patch_path(value)


class CreatePatch(_PatchBase):
    """Create (or fully overwrite) a file"""

    action: Literal["create"] = "create"
    content: str


class ReplacePatch(_PatchBase):
    """Replace exactly one occurrence of ``search_block`` with ``replace_block``"""

    action: Literal["replace"] = "replace"
    search_block: str
    replace_block: str

    @field_validator("search_block")
    @classmethod
    def _search_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("search_block must be a non-empty string")
        return value


class DeletePatch(_PatchBase):
    """Delete a file"""

    action: Literal["delete"] = "delete"


PatchOperation = Annotated[
    Union[CreatePatch, ReplacePatch, DeletePatch],
    Field(discriminator="action"),
]

PATCH_OPERATION_ADAPTER = TypeAdapter(PatchOperation)


class SearchReplacePayload(BaseModel):
    """Wire shape for PatchFormat.SEARCH_REPLACE"""

    patches: List[PatchOperation] = Field(default_factory=list)


class FileWrite(BaseModel):
    path: str
    content: str

    @field_validator("path", mode="before")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        return normalize_patch_path(value)


class FileWritesPayload(BaseModel):
    """Wire shape for PatchFormat.FILE_WRITES"""

    files: List[FileWrite] = Field(default_factory=list)
    delete: List[str] = Field(default_factory=list)

    @field_validator("delete", mode="before")
    @classmethod
    def _normalize_deletes(cls, value):
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("delete must be a list of paths")
        return [normalize_patch_path(entry) for entry in value]

    def to_operations(self) -> List[PatchOperation]:
        operations: List[PatchOperation] = [
            CreatePatch(file=entry.path, content=entry.content) for entry in self.files
        ]
        operations.extend(DeletePatch(file=path) for path in self.delete)
        return operations


def operation_targets(operations: List[PatchOperation]) -> List[str]:
    """Distinct target paths in first-seen order"""
    seen: List[str] = []
    for op in operations:
        if op.file not in seen:
            seen.append(op.file)
    return seen
