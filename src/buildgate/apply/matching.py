"""Search-block matching for replace operations.

Two tiers, both refusing to guess:
1. Exact, byte-for-byte occurrences of the search block.
2. Whitespace-normalized occurrences: runs of whitespace in the search block,
   and the gaps between its characters, match any amount of whitespace in the
   file. The pattern runs against the untouched file text, so every match span
   is already the original span that gets replaced.

Exactly one match under a tier wins. More than one is ambiguous at that tier
and is never resolved by picking an occurrence.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

logger = logging.getLogger(__name__)

Span = Tuple[int, int]

EXACT = "exact"
WHITESPACE = "whitespace"

WHITESPACE_RUN = re.compile(r"\s+")


@dataclass(frozen=True)
class MatchResult:
    """Outcome of locating a search block.

    ``spans`` holds every candidate found by the tier that decided the
    outcome; a unique match has exactly one span.
    """

    strategy: Optional[str]
    spans: List[Span]

    @property
    def unique(self) -> bool:
        return len(self.spans) == 1

    @property
    def ambiguous(self) -> bool:
        return len(self.spans) > 1


def find_exact_spans(content: str, search: str) -> List[Span]:
    """All exact occurrences, overlapping ones included."""
    spans: List[Span] = []
    if not search:
        return spans
    start = content.find(search)
    while start != -1:
        spans.append((start, start + len(search)))
        start = content.find(search, start + 1)
    return spans


def build_whitespace_pattern(search: str) -> Optional[Pattern[str]]:
    """Compile the whitespace-insensitive pattern for a search block.

    Returns None when the search block is only whitespace.
    """
    tokens = [token for token in WHITESPACE_RUN.split(search.strip()) if token]
    if not tokens:
        return None
    pieces = ["\\s*".join(re.escape(ch) for ch in token) for token in tokens]
    return re.compile("\\s*".join(pieces))


def find_whitespace_spans(content: str, search: str) -> List[Span]:
    """All whitespace-normalized occurrences, mapped to original-text spans."""
    pattern = build_whitespace_pattern(search)
    if pattern is None:
        return []
    spans: List[Span] = []
    pos = 0
    while pos <= len(content):
        match = pattern.search(content, pos)
        if match is None:
            break
        spans.append(match.span())
        # Restart one character later so overlapping candidates are counted too.
        pos = match.start() + 1
    return spans


def locate(content: str, search: str) -> MatchResult:
    """Locate ``search`` in ``content`` with the exact-then-whitespace strategy."""
    spans = find_exact_spans(content, search)
    if spans:
        return MatchResult(strategy=EXACT, spans=spans)

    spans = find_whitespace_spans(content, search)
    if spans:
        logger.debug("[Match] Exact search failed; whitespace-normalized candidates: %d", len(spans))
        return MatchResult(strategy=WHITESPACE, spans=spans)

    return MatchResult(strategy=None, spans=[])


def splice(content: str, span: Span, replacement: str) -> str:
    start, end = span
    return content[:start] + replacement + content[end:]


def trim_replacement(search: str, replacement: str) -> str:
    """Align a replacement with a whitespace-normalized match span.

    The whitespace pattern is built from the stripped search block, so the
    matched span excludes the block's leading indentation and trailing
    newline. The same outer whitespace is dropped from the replacement, which
    leaves the file's own indentation and line ending around the span intact.
    """
    stripped = search.strip()
    if not stripped:
        return replacement
    lead = search[: len(search) - len(search.lstrip())]
    trail = search[len(search.rstrip()):]
    if lead and replacement.startswith(lead):
        replacement = replacement[len(lead):]
    if trail and replacement.endswith(trail) and len(replacement) >= len(trail):
        replacement = replacement[: len(replacement) - len(trail)]
    return replacement
