"""Builder output parsers.

One parser per patch format behind a common ``parse(raw) -> operations``
interface, plus the helpers the runner uses to classify a raw response:
- Loose JSON recovery (direct parse, then one sliced ``{...}`` candidate)
- Context-request detection (strict and loose)
- Targeted prose detection and conversion
- Tool-call extraction from provider responses
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..exceptions import PatchParseError
from ..patch_model import (
    PATCH_OPERATION_ADAPTER,
    FileWritesPayload,
    PatchFormat,
    PatchOperation,
    ReplacePatch,
)
from ..schemas import ContextRequest, ProviderResponse, ToolCall

logger = logging.getLogger(__name__)

CONTEXT_REQUEST_KEYS = ("needs_context", "request_context", "context_request")

# Bare marker form, only honored outside patch_json.
NEEDS_CONTEXT_MARKER = re.compile(r"^\s*needs[_ ]context\b[:\s-]*(?P<reason>.*)$", re.IGNORECASE | re.MULTILINE)

# "replace `X` with `Y`" / "change 'X' to 'Y'" with any matching quote style.
TARGETED_EDIT_PATTERN = re.compile(
    r"\b(?:replace|change)\s+(?P<q1>`+|\"|')(?P<search>.+?)(?P=q1)\s+(?:with|to|by)\s+(?P<q2>`+|\"|')(?P<replace>.*?)(?P=q2)",
    re.IGNORECASE | re.DOTALL,
)
FILE_PATH_PATTERN = re.compile(r"(?<![\w/.-])(?:[\w.-]+/)*[\w-]+(?:\.[\w-]+)*\.[A-Za-z0-9]{1,8}\b")

# Keys some models use instead of ``file``.
_FILE_ALIASES = ("path", "file_path", "filename")
_ACTION_ALIASES = {"edit": "replace", "modify": "replace", "update": "replace", "write": "create", "remove": "delete"}


def extract_json_candidate(raw_text: str) -> Optional[str]:
    """Slice from the first ``{`` to the last ``}``; None if there is no such span."""
    start = raw_text.find("{")
    end = raw_text.rfind("}")
    if start == -1 or end <= start:
        return None
    return raw_text[start : end + 1]


def load_json_loose(raw_text: str) -> Any:
    """Parse model output as JSON, tolerating a wrapping code fence or prose.

    Raises:
        PatchParseError: when neither the whole text nor the sliced candidate
            parses.
    """
    text = (raw_text or "").strip()
    if not text:
        raise PatchParseError("Empty model output (expected JSON)")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    candidate = extract_json_candidate(text)
    if candidate is None:
        raise PatchParseError("Model output is not JSON (no JSON object found)")
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise PatchParseError(f"Model output is not valid JSON: {e.msg} at line {e.lineno}")
    logger.debug("[Parsers] Recovered JSON from wrapped output (%d of %d chars)", len(candidate), len(text))
    return data


def _try_json(text: Optional[str]) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _first_validation_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()) if part is not None)
    return f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))


def _normalize_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
    normalized = dict(entry)
    if "file" not in normalized:
        for alias in _FILE_ALIASES:
            if alias in normalized:
                normalized["file"] = normalized.pop(alias)
                break
    action = normalized.get("action")
    if isinstance(action, str):
        action = action.strip().lower()
        normalized["action"] = _ACTION_ALIASES.get(action, action)
    return normalized


def operations_from_patch_list(patches: Any) -> List[PatchOperation]:
    """Validate a ``patches`` array into typed operations."""
    if not isinstance(patches, list):
        raise PatchParseError("'patches' must be an array of patch objects")
    if not patches:
        raise PatchParseError("Patch set is empty ('patches' has no entries)", error="empty_patch_set")

    operations: List[PatchOperation] = []
    for index, entry in enumerate(patches):
        if not isinstance(entry, dict):
            raise PatchParseError(f"patches[{index}] must be an object")
        if "action" not in entry:
            raise PatchParseError(f"patches[{index}] is missing 'action'")
        try:
            operations.append(PATCH_OPERATION_ADAPTER.validate_python(_normalize_entry(entry)))
        except ValidationError as e:
            raise PatchParseError(f"patches[{index}] invalid: {_first_validation_error(e)}")
    return operations


def parse_search_replace(raw_text: str) -> List[PatchOperation]:
    """Parse ``{"patches": [...]}``; a bare top-level array is the patch list."""
    data = load_json_loose(raw_text)
    if isinstance(data, list):
        return operations_from_patch_list(data)
    if not isinstance(data, dict):
        raise PatchParseError("Expected a JSON object with a 'patches' array")
    if "patches" not in data:
        raise PatchParseError("Missing 'patches' array")
    return operations_from_patch_list(data["patches"])


def parse_file_writes(raw_text: str) -> List[PatchOperation]:
    """Parse ``{"files": [{"path", "content"}], "delete"?: [...]}`` into operations.

    Each file entry becomes a full-overwrite ``create``. A payload carrying a
    non-empty ``patches`` array instead is accepted as search_replace.
    """
    data = load_json_loose(raw_text)
    if not isinstance(data, dict):
        raise PatchParseError("Expected a JSON object with a 'files' array")
    if isinstance(data.get("patches"), list) and data["patches"]:
        logger.info("[Parsers] file_writes output carried 'patches'; parsing as search_replace")
        return operations_from_patch_list(data["patches"])
    if "files" not in data and "delete" not in data:
        raise PatchParseError("Missing 'files' array")
    if "files" in data and not isinstance(data["files"], list):
        raise PatchParseError("'files' must be an array of {path, content} objects")

    try:
        payload = FileWritesPayload.model_validate(data)
    except ValidationError as e:
        raise PatchParseError(f"Invalid file_writes payload: {_first_validation_error(e)}")

    operations = payload.to_operations()
    if not operations:
        raise PatchParseError("Patch set is empty ('files' has no entries)", error="empty_patch_set")
    return operations


PARSERS: Dict[PatchFormat, Callable[[str], List[PatchOperation]]] = {
    PatchFormat.SEARCH_REPLACE: parse_search_replace,
    PatchFormat.FILE_WRITES: parse_file_writes,
}


def parse_patch_output(raw_text: str, patch_format: PatchFormat) -> List[PatchOperation]:
    """Dispatch to the parser for ``patch_format``.

    Raises:
        PatchParseError: ``empty_patch_set`` or ``schema_invalid``.
    """
    return PARSERS[PatchFormat(patch_format)](raw_text)


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return []


def _is_context_request(data: Dict[str, Any]) -> bool:
    if any(data.get(key) is True for key in CONTEXT_REQUEST_KEYS):
        return True
    return str(data.get("type", "")).strip().lower() == "needs_context"


def _context_request_from(data: Dict[str, Any]) -> ContextRequest:
    reason = data.get("reason") or data.get("message")
    return ContextRequest(
        reason=str(reason) if reason else None,
        queries=_string_list(data.get("queries")),
        files=_string_list(data.get("files")),
    )


def parse_context_request(content: Optional[str], strict: bool = True) -> Optional[ContextRequest]:
    """Detect a "needs more context" response.

    Strict mode requires the whole stripped response to be the request
    object. Loose mode also accepts an object embedded in prose or a fence,
    and a bare ``needs_context`` marker line.
    """
    text = (content or "").strip()
    if not text:
        return None

    data = _try_json(text)
    if data is None and not strict:
        data = _try_json(extract_json_candidate(text))
    if isinstance(data, dict) and _is_context_request(data):
        return _context_request_from(data)

    if not strict and data is None:
        marker = NEEDS_CONTEXT_MARKER.search(text)
        if marker:
            reason = marker.group("reason").strip()
            return ContextRequest(reason=reason or None)
    return None


def is_targeted_freeform(text: Optional[str]) -> bool:
    """Prose that names a file and an explicit search/replace pair."""
    if not text:
        return False
    pair = TARGETED_EDIT_PATTERN.search(text)
    if pair is None:
        return False
    return _nearest_file(text, pair.start(), [pair.span()]) is not None


def _file_mentions(text: str, excluded: List[tuple]) -> List[re.Match]:
    mentions = []
    for match in FILE_PATH_PATTERN.finditer(text):
        if any(start <= match.start() < end for start, end in excluded):
            continue
        mentions.append(match)
    return mentions


def _nearest_file(text: str, position: int, excluded: List[tuple]) -> Optional[str]:
    mentions = _file_mentions(text, excluded)
    preceding = [m for m in mentions if m.end() <= position]
    if preceding:
        return preceding[-1].group(0)
    return mentions[0].group(0) if mentions else None


def parse_targeted_freeform(text: str) -> List[PatchOperation]:
    """Convert targeted prose into replace operations.

    Every "replace X with Y" pair is attributed to the closest file path
    mentioned before it (or the first one in the text).
    """
    pairs = list(TARGETED_EDIT_PATTERN.finditer(text or ""))
    if not pairs:
        raise PatchParseError("No explicit search/replace pair found in prose")
    excluded = [pair.span() for pair in pairs]

    operations: List[PatchOperation] = []
    for pair in pairs:
        file_path = _nearest_file(text, pair.start(), excluded)
        if file_path is None:
            raise PatchParseError("Prose edit does not name a target file")
        try:
            operations.append(
                ReplacePatch(file=file_path, search_block=pair.group("search"), replace_block=pair.group("replace"))
            )
        except ValidationError as e:
            raise PatchParseError(f"Invalid prose edit for {file_path}: {_first_validation_error(e)}")
    return operations


def extract_tool_calls(response: ProviderResponse) -> List[ToolCall]:
    """Tool invocations requested by a response; empty for a terminal message.

    Arguments are passed through untouched; the registry validates them.
    """
    calls = response.tool_calls or response.message.tool_calls
    return [call for call in calls if call.name]
