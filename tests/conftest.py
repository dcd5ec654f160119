"""
Pytest Configuration & Shared Fixtures
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

import pytest

from hive.config import SwarmConfig
from hive.errors import NotificationFailure
from hive.swarm.agent_registry import AgentRegistry
from hive.swarm.notifier import Notifier, Settlement
from hive.swarm.task_store import TaskStore


# ============================================================
# Pytest Configuration
# ============================================================

def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers",
        "unit: Unit tests (fast, isolated)"
    )
    config.addinivalue_line(
        "markers",
        "integration: Integration tests (slower, multi-component)"
    )
    config.addinivalue_line(
        "markers",
        "slow: Slow tests (skip with -m 'not slow')"
    )


# ============================================================
# Test Doubles
# ============================================================

class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Reply = Union[Dict[str, Any], Callable[[Dict[str, Any]], Any], None]


class FakeNotifier(Notifier):
    """In-memory notifier recording every message.

    - replies: endpoint -> reply dict (or callable taking the message)
    - failing: endpoints that raise NotificationFailure
    - delays: endpoint -> seconds to sleep before replying
    """

    def __init__(self):
        self.sent: List[Tuple[str, Dict[str, Any], str]] = []
        self.replies: Dict[str, Reply] = {}
        self.failing: Set[str] = set()
        self.delays: Dict[str, float] = {}

    async def notify(self, endpoint, message, priority="normal"):
        self.sent.append((endpoint, message, priority))
        if endpoint in self.failing:
            raise NotificationFailure(endpoint, ConnectionError("connection refused"))
        delay = self.delays.get(endpoint)
        if delay:
            await asyncio.sleep(delay)
        reply = self.replies.get(endpoint, {"ok": True})
        if callable(reply):
            reply = reply(message)
        return reply

    def messages_of_type(self, msg_type: str) -> List[Tuple[str, Dict[str, Any]]]:
        return [(ep, msg) for ep, msg, _ in self.sent if msg.get("type") == msg_type]


class RecordingSettlement(Settlement):
    def __init__(self, fail: bool = False):
        self.payouts: List[Tuple[str, float]] = []
        self.fail = fail

    async def settle(self, agent_id, amount):
        if self.fail:
            raise RuntimeError("settlement service unavailable")
        self.payouts.append((agent_id, amount))


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def settlement() -> RecordingSettlement:
    return RecordingSettlement()


@pytest.fixture
def failing_settlement() -> RecordingSettlement:
    return RecordingSettlement(fail=True)


@pytest.fixture
def swarm_config() -> SwarmConfig:
    """Deterministic swarm config for tests."""
    return SwarmConfig(
        swarm_id="swarm-test",
        task_timeout_sec=300.0,
        monitor_interval_sec=30.0,
        default_vote_timeout_sec=1.0,
    )


@pytest.fixture
def registry() -> AgentRegistry:
    return AgentRegistry()


@pytest.fixture
def store(clock: FakeClock) -> TaskStore:
    return TaskStore(clock=clock)


def agent_config(agent_id: str, *capabilities: str, **extra) -> Dict[str, Any]:
    cfg = {
        "id": agent_id,
        "endpoint": f"http://{agent_id}.local",
        "capabilities": list(capabilities) or ["general"],
    }
    cfg.update(extra)
    return cfg


@pytest.fixture
def make_agent_config() -> Callable[..., Dict[str, Any]]:
    return agent_config


def assert_workload_invariant(registry: AgentRegistry, store: TaskStore) -> None:
    """Every agent's task list matches the assigned tasks pointing at it."""
    from hive.swarm.task_store import TaskStatus

    for agent in registry.list_all():
        held = {
            t.task_id for t in store.list_by_status(TaskStatus.ASSIGNED)
            if t.assigned_to == agent.agent_id
        }
        assert set(agent.assigned_task_ids) == held
        assert len(agent.assigned_task_ids) == len(held)


@pytest.fixture
def check_invariant() -> Callable[[AgentRegistry, TaskStore], None]:
    return assert_workload_invariant
