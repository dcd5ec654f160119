"""
Unit Tests for Task Store lifecycle
"""

import threading

import pytest

from hive.errors import InvalidTaskConfig, InvalidTransition, SwarmError, TaskNotFound
from hive.swarm.task_store import TaskPriority, TaskStatus, TaskStore

pytestmark = pytest.mark.unit


def _new(store, **cfg):
    base = {"type": "analysis", "description": "scan", "requiredCapabilities": ["analysis"]}
    base.update(cfg)
    return store.create(base)


class TestTaskStore:
    """Test task creation and the state machine."""

    def test_create_defaults(self, store, clock):
        task = _new(store)

        assert task.status == TaskStatus.PENDING
        assert task.assigned_to is None
        assert task.priority == TaskPriority.NORMAL
        assert task.reward == 0.01
        assert task.created_at == clock.now
        assert task.required_capabilities == frozenset({"analysis"})
        assert task.history == [(TaskStatus.PENDING, clock.now)]

    def test_create_parses_priority_and_reward(self, store):
        task = _new(store, priority="HIGH", reward=0.5)

        assert task.priority == TaskPriority.HIGH
        assert task.reward == 0.5

    def test_create_rejects_bad_input(self, store):
        with pytest.raises(InvalidTaskConfig):
            _new(store, priority="urgent")
        with pytest.raises(InvalidTaskConfig):
            _new(store, reward=-1)
        with pytest.raises(InvalidTaskConfig):
            _new(store, reward="lots")

    def test_duplicate_task_id_is_swarm_error(self, store):
        store.create({"id": "t1"})

        with pytest.raises(SwarmError):
            store.create({"id": "t1"})
        assert store.get_statistics()["total"] == 1

    def test_get_unknown(self, store):
        with pytest.raises(TaskNotFound):
            store.get("task-missing")

    def test_happy_path(self, store, clock):
        task = _new(store)
        clock.advance(5)
        store.mark_assigned(task.task_id, "a1")

        assert task.status == TaskStatus.ASSIGNED
        assert task.assigned_to == "a1"
        assert task.assigned_at == clock.now
        assert task.attempts == 1

        clock.advance(10)
        store.mark_completed(task.task_id, {"ok": True})

        assert task.status == TaskStatus.COMPLETED
        assert task.result == {"ok": True}
        assert task.completed_at == clock.now
        assert [s for s, _ in task.history] == [
            TaskStatus.PENDING, TaskStatus.ASSIGNED, TaskStatus.COMPLETED,
        ]

    def test_complete_twice_is_rejected(self, store):
        task = _new(store)
        store.mark_assigned(task.task_id, "a1")
        store.mark_completed(task.task_id, "first")

        with pytest.raises(InvalidTransition) as exc:
            store.mark_completed(task.task_id, "second")

        assert exc.value.current == TaskStatus.COMPLETED
        assert task.result == "first"

    @pytest.mark.parametrize("transition", ["mark_completed", "mark_failed", "mark_timeout"])
    def test_terminal_transitions_require_assigned(self, store, transition):
        task = _new(store)

        with pytest.raises(InvalidTransition):
            getattr(store, transition)(task.task_id)

        assert task.status == TaskStatus.PENDING

    def test_assign_requires_pending(self, store):
        task = _new(store)
        store.mark_assigned(task.task_id, "a1")

        with pytest.raises(InvalidTransition):
            store.mark_assigned(task.task_id, "a2")

        assert task.assigned_to == "a1"

    def test_timeout_then_requeue(self, store):
        task = _new(store)
        store.mark_assigned(task.task_id, "a1")
        store.mark_timeout(task.task_id)
        store.requeue(task.task_id)

        assert task.status == TaskStatus.PENDING
        assert task.assigned_to is None
        assert task.last_holder == "a1"

        store.mark_assigned(task.task_id, "a2")
        assert task.attempts == 2
        assert [s for s, _ in task.history] == [
            TaskStatus.PENDING, TaskStatus.ASSIGNED, TaskStatus.TIMEOUT,
            TaskStatus.PENDING, TaskStatus.ASSIGNED,
        ]

    def test_requeue_only_from_timeout(self, store):
        task = _new(store)
        store.mark_assigned(task.task_id, "a1")
        store.mark_failed(task.task_id, "crashed")

        with pytest.raises(InvalidTransition):
            store.requeue(task.task_id)
        assert task.error == "crashed"

    def test_update_patches_metadata_only(self, store):
        task = _new(store)

        store.update(task.task_id, description="rescan", metadata={"pool": "eth"})
        assert task.description == "rescan"
        assert task.metadata == {"pool": "eth"}

        with pytest.raises(InvalidTaskConfig):
            store.update(task.task_id, status=TaskStatus.COMPLETED)
        with pytest.raises(InvalidTaskConfig):
            store.update(task.task_id, colour="blue")

    def test_concurrent_complete_and_timeout_only_one_wins(self):
        """Racing terminal signals: exactly one transition succeeds."""
        store = TaskStore()
        task = store.create({"description": "race"})
        store.mark_assigned(task.task_id, "a1")

        outcomes = []
        barrier = threading.Barrier(2)

        def attempt(fn):
            barrier.wait()
            try:
                fn(task.task_id)
                outcomes.append("ok")
            except InvalidTransition:
                outcomes.append("rejected")

        threads = [
            threading.Thread(target=attempt, args=(store.mark_completed,)),
            threading.Thread(target=attempt, args=(store.mark_timeout,)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["ok", "rejected"]
        assert task.status in (TaskStatus.COMPLETED, TaskStatus.TIMEOUT)

    def test_statistics(self, store):
        a = _new(store)
        _new(store)
        store.mark_assigned(a.task_id, "a1")

        stats = store.get_statistics()

        assert stats["total"] == 2
        assert stats["pending"] == 1
        assert stats["assigned"] == 1
        assert stats["completed"] == 0
        assert stats["timeout"] == 0


class TestStaleSignals:
    """Completion and failure signals tied to a specific assignment."""

    def test_signal_from_previous_holder_rejected(self, store):
        task = _new(store)
        store.mark_assigned(task.task_id, "slow")
        store.mark_timeout(task.task_id)
        store.requeue(task.task_id)
        store.mark_assigned(task.task_id, "fast")

        with pytest.raises(InvalidTransition):
            store.mark_completed(task.task_id, "late", agent_id="slow")
        with pytest.raises(InvalidTransition):
            store.mark_failed(task.task_id, "late", agent_id="slow")

        assert task.status == TaskStatus.ASSIGNED
        assert task.result is None

        store.mark_completed(task.task_id, "on time", agent_id="fast")
        assert task.status == TaskStatus.COMPLETED

    def test_signal_from_earlier_attempt_rejected(self, store):
        task = _new(store)
        store.mark_assigned(task.task_id, "only")
        store.mark_timeout(task.task_id)
        store.requeue(task.task_id)
        store.mark_assigned(task.task_id, "only")

        with pytest.raises(InvalidTransition):
            store.mark_completed(task.task_id, agent_id="only", attempt=1)

        store.mark_completed(task.task_id, agent_id="only", attempt=2)
        assert task.status == TaskStatus.COMPLETED
