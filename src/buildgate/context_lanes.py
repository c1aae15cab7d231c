"""Conversation lanes: per-lane message history replayed into builder calls."""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Protocol

from .schemas import ContextBundle, ProviderMessage

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES = 40


class ContextManager(Protocol):
    def prepare(
        self,
        lane_id: str,
        system_prompt: Optional[str] = None,
        bundle: Optional[ContextBundle] = None,
        model: Optional[str] = None,
    ) -> List[ProviderMessage]:
        """Prior lane messages to prepend before the current user turn"""
        ...

    def append(self, lane_id: str, message: ProviderMessage, metadata: Optional[Dict[str, Any]] = None) -> None:
        ...


class InMemoryContextManager:
    """Process-local lane store keeping the newest ``max_messages`` per lane"""

    def __init__(self, max_messages: int = DEFAULT_MAX_MESSAGES):
        self.max_messages = max_messages
        self._lanes: Dict[str, List[ProviderMessage]] = defaultdict(list)
        self._metadata: Dict[str, List[Dict[str, Any]]] = defaultdict(list)

    def prepare(
        self,
        lane_id: str,
        system_prompt: Optional[str] = None,
        bundle: Optional[ContextBundle] = None,
        model: Optional[str] = None,
    ) -> List[ProviderMessage]:
        return list(self._lanes.get(lane_id, []))

    def append(self, lane_id: str, message: ProviderMessage, metadata: Optional[Dict[str, Any]] = None) -> None:
        lane = self._lanes[lane_id]
        lane.append(message)
        self._metadata[lane_id].append(dict(metadata or {}))
        overflow = len(lane) - self.max_messages
        if overflow > 0:
            del lane[:overflow]
            del self._metadata[lane_id][:overflow]
            logger.debug(f"[Lanes] Trimmed {overflow} messages from lane {lane_id}")

    def history(self, lane_id: str) -> List[ProviderMessage]:
        return list(self._lanes.get(lane_id, []))

    def metadata(self, lane_id: str) -> List[Dict[str, Any]]:
        return list(self._metadata.get(lane_id, []))

    def clear(self, lane_id: str) -> None:
        self._lanes.pop(lane_id, None)
        self._metadata.pop(lane_id, None)
