"""
Unit Tests for Knowledge map and broadcaster
"""

import pytest

from hive.swarm.knowledge import KnowledgeBase, KnowledgeBroadcaster

pytestmark = pytest.mark.unit


@pytest.fixture
def knowledge():
    return KnowledgeBase()


@pytest.fixture
def broadcaster(registry, knowledge, notifier, clock):
    return KnowledgeBroadcaster(registry, knowledge, notifier,
                                retry_delay=0.0, clock=clock)


class TestKnowledgeBase:

    def test_put_get(self, knowledge):
        knowledge.put("k", {"v": 1})

        assert knowledge.get("k") == {"v": 1}
        assert knowledge.get("missing", "dflt") == "dflt"
        assert len(knowledge) == 1

    def test_task_results_are_namespaced(self, knowledge):
        knowledge.store_task_result("task-1", [1, 2])

        assert knowledge.get("task-result-task-1") == [1, 2]
        assert knowledge.get_task_result("task-1") == [1, 2]


class TestBroadcaster:

    @pytest.mark.asyncio
    async def test_share_stores_and_fans_out(
        self, registry, knowledge, notifier, broadcaster, clock, make_agent_config
    ):
        registry.register(make_agent_config("a1"))
        registry.register(make_agent_config("a2"))
        registry.register(make_agent_config("a3"))
        registry.deactivate("a3")

        entry = await broadcaster.share("spread-alert", {"spread": 0.4})
        await broadcaster.drain()

        assert entry == {
            "pattern": "spread-alert",
            "data": {"spread": 0.4},
            "sharedBy": "queen",
            "timestamp": clock.now,
        }
        assert knowledge.get_pattern("spread-alert") == entry

        sent = notifier.messages_of_type("knowledge-share")
        assert [ep for ep, _ in sent] == ["http://a1.local", "http://a2.local"]
        assert sent[0][1] == {
            "type": "knowledge-share",
            "pattern": "spread-alert",
            "data": {"spread": 0.4},
        }
        assert broadcaster.delivered == 2

    @pytest.mark.asyncio
    async def test_share_does_not_wait_for_delivery(
        self, registry, notifier, broadcaster, make_agent_config
    ):
        agent = registry.register(make_agent_config("slow"))
        notifier.delays[agent.endpoint] = 0.05

        await broadcaster.share("p", 1)
        assert broadcaster.pending == 1

        await broadcaster.drain()
        assert broadcaster.pending == 0

    @pytest.mark.asyncio
    async def test_failed_delivery_is_dropped(
        self, registry, notifier, broadcaster, make_agent_config
    ):
        registry.register(make_agent_config("up"))
        down = registry.register(make_agent_config("down"))
        notifier.failing.add(down.endpoint)

        await broadcaster.share("p", 1)
        await broadcaster.drain()

        assert broadcaster.delivered == 1
        assert broadcaster.failed == 1

    @pytest.mark.asyncio
    async def test_retries(self, registry, knowledge, notifier, clock, make_agent_config):
        broadcaster = KnowledgeBroadcaster(registry, knowledge, notifier,
                                           retries=2, retry_delay=0.0, clock=clock)
        down = registry.register(make_agent_config("down"))
        notifier.failing.add(down.endpoint)

        await broadcaster.share("p", 1)
        await broadcaster.drain()

        assert len(notifier.sent) == 3
        assert broadcaster.failed == 1

    @pytest.mark.asyncio
    async def test_cancel_pending(self, registry, notifier, broadcaster, make_agent_config):
        agent = registry.register(make_agent_config("slow"))
        notifier.delays[agent.endpoint] = 10.0

        await broadcaster.share("p", 1)
        await broadcaster.cancel_pending()

        assert broadcaster.pending == 0
        assert broadcaster.delivered == 0
