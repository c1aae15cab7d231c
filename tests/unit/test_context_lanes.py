"""Tests for in-memory context lanes."""

from buildgate.context_lanes import InMemoryContextManager
from buildgate.schemas import ProviderMessage


class TestInMemoryContextManager:
    """Tests for InMemoryContextManager."""

    def test_prepare_returns_lane_history(self):
        manager = InMemoryContextManager()
        manager.append("lane-1", ProviderMessage(role="user", content="first"), {"kind": "prompt"})

        history = manager.prepare("lane-1", system_prompt="sys", bundle=None, model="m")

        assert [m.content for m in history] == ["first"]
        assert manager.prepare("other") == []

    def test_cap_drops_oldest(self):
        manager = InMemoryContextManager(max_messages=2)
        for i in range(3):
            manager.append("lane", ProviderMessage(role="user", content=str(i)), {"i": i})

        assert [m.content for m in manager.history("lane")] == ["1", "2"]
        assert manager.metadata("lane") == [{"i": 1}, {"i": 2}]

    def test_clear(self):
        manager = InMemoryContextManager()
        manager.append("lane", ProviderMessage(role="user", content="x"))
        manager.clear("lane")
        assert manager.history("lane") == []
