"""Prompt text for builder and interpreter calls."""

from __future__ import annotations

import json
from typing import Optional

from ..patch_model import PatchFormat, RunMode
from ..schemas import ContextBundle, Plan

CONTEXT_REQUEST_INSTRUCTIONS = """If the provided context is not enough to make the change safely, do not guess.
Respond with ONLY this JSON object instead:
{"needs_context": true, "reason": "<why>", "queries": ["<search query>"], "files": ["<file to load>"]}"""

SEARCH_REPLACE_SCHEMA = """{
  "patches": [
    {"action": "replace", "file": "<relative file path>", "search_block": "<exact text currently in the file>", "replace_block": "<new text>"},
    {"action": "create", "file": "<relative file path>", "content": "<full file content>"},
    {"action": "delete", "file": "<relative file path>"}
  ]
}"""

FILE_WRITES_SCHEMA = """{
  "files": [
    {"path": "<relative file path>", "content": "<complete new file content>"}
  ],
  "delete": ["<relative file path, only when the plan asks for deletion>"]
}"""

_SCHEMAS = {
    PatchFormat.SEARCH_REPLACE: SEARCH_REPLACE_SCHEMA,
    PatchFormat.FILE_WRITES: FILE_WRITES_SCHEMA,
}

_FORMAT_RULES = {
    PatchFormat.SEARCH_REPLACE: """Rules:
- Output ONLY the JSON object. No markdown fences, no commentary.
- "patches" must contain at least one entry.
- search_block must be copied exactly from the current file and must occur exactly once in it.
  Include enough surrounding lines to make it unique.
- Use "create" for new files and give the complete content.
- Never use placeholders such as "..." or "<relative file path>" in real output.""",
    PatchFormat.FILE_WRITES: """Rules:
- Output ONLY the JSON object. No markdown fences, no commentary.
- "files" must contain at least one entry.
- content is the COMPLETE new file content; it replaces the whole file.
- Never abbreviate with "..." or comments like "rest of file unchanged".""",
}


def build_system_prompt(mode: RunMode, patch_format: PatchFormat = PatchFormat.SEARCH_REPLACE) -> str:
    """System prompt for a builder call in ``mode``."""
    mode = RunMode(mode)
    intro = (
        "You are the Builder in a coding pipeline. An architect has produced a plan; "
        "your job is to make exactly the file changes the plan describes, and nothing else."
    )

    if mode == RunMode.TOOL_CALLS:
        return f"""{intro}

Use the provided tools to inspect and edit files in the workspace.
Only modify the files named in the plan. When the work is complete, reply with a short plain-text summary
of what you changed and do not call any more tools.

{CONTEXT_REQUEST_INSTRUCTIONS}"""

    if mode == RunMode.PATCH_JSON:
        patch_format = PatchFormat(patch_format)
        return f"""{intro}

Respond with a single JSON object using this schema:
{_SCHEMAS[patch_format]}

{_FORMAT_RULES[patch_format]}

{CONTEXT_REQUEST_INSTRUCTIONS}"""

    return f"""{intro}

Describe each edit precisely, one per line, naming the file and quoting the exact text, for example:
Update `src/module.py`: replace `old text` with `new text`
To create a file, give its path and full content in a fenced code block.

{CONTEXT_REQUEST_INSTRUCTIONS}"""


def build_user_prompt(plan: Plan, bundle: ContextBundle) -> str:
    """User turn carrying the plan and the rendered context bundle."""
    plan_json = json.dumps(plan.model_dump(), indent=2)
    return f"""PLAN:
{plan_json}

CONTEXT:
{bundle.render()}"""


def build_schema_repair_prompt(patch_format: PatchFormat, error: str) -> str:
    """Follow-up user turn after output that could not be parsed."""
    patch_format = PatchFormat(patch_format)
    return f"""Your previous response could not be used: {error}

Respond again with ONLY a JSON object that matches this schema exactly:
{_SCHEMAS[patch_format]}

{_FORMAT_RULES[patch_format]}
Do not explain. Do not wrap the JSON in a code fence."""


def build_interpreter_prompt(patch_format: PatchFormat, strict: bool = False, error: Optional[str] = None) -> str:
    """System prompt for converting builder prose into a patch payload."""
    patch_format = PatchFormat(patch_format)
    prompt = f"""You convert a coding assistant's description of file edits into a machine-readable patch.
Do not invent edits that the text does not describe. Copy search text exactly as quoted.

Output a single JSON object using this schema:
{_SCHEMAS[patch_format]}

{_FORMAT_RULES[patch_format]}"""
    if strict:
        prompt += f"""

STRICT MODE: your previous conversion was rejected ({error or "invalid output"}).
Output the JSON object and nothing else."""
    return prompt
