"""Task Store and lifecycle state machine.

Owns every Task record. Status changes are compare-and-swap: the
transition only happens when the task is in the expected source state,
otherwise InvalidTransition is raised and nothing is modified.

    pending -> assigned -> completed | failed | timeout
    timeout -> pending   (requeue, followed by a fresh assignment)
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from hive.errors import InvalidTaskConfig, InvalidTransition, TaskNotFound

log = logging.getLogger("hive.swarm.tasks")


class TaskStatus(Enum):
    """Task lifecycle status."""
    PENDING = "pending"        # Waiting for an eligible agent
    ASSIGNED = "assigned"      # Held by an agent
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"        # Holder missed the deadline, about to be requeued


class TaskPriority(Enum):
    """Task priority levels. Metadata only; passed along in notifications."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class Task:
    """A unit of work offered to the swarm."""
    task_id: str
    task_type: Optional[str]
    description: str
    required_capabilities: FrozenSet[str] = frozenset()
    priority: TaskPriority = TaskPriority.NORMAL
    reward: float = 0.01

    status: TaskStatus = TaskStatus.PENDING
    assigned_to: Optional[str] = None
    # Holder before the most recent timeout, if any
    last_holder: Optional[str] = None
    result: Optional[Any] = None
    error: Optional[str] = None

    created_at: float = field(default_factory=time.time)
    assigned_at: Optional[float] = None
    completed_at: Optional[float] = None

    # Number of assignments so far (1 for a task that was never reassigned)
    attempts: int = 0
    history: List[Tuple[TaskStatus, float]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.task_id,
            "type": self.task_type,
            "description": self.description,
            "requiredCapabilities": sorted(self.required_capabilities),
            "priority": self.priority.value,
            "reward": self.reward,
            "status": self.status.value,
            "assignedTo": self.assigned_to,
            "result": self.result,
            "error": self.error,
            "createdAt": self.created_at,
            "assignedAt": self.assigned_at,
            "completedAt": self.completed_at,
            "attempts": self.attempts,
            "metadata": self.metadata,
        }


# Fields the store manages itself; update() refuses to touch them.
_PROTECTED_FIELDS = frozenset(
    {"task_id", "status", "assigned_to", "assigned_at", "completed_at",
     "attempts", "history", "created_at", "last_holder"}
)


class TaskStore:
    """
    Thread-safe owner of Task records.

    Example:
        store = TaskStore()
        task = store.create({"type": "analysis", "description": "Scan pools",
                             "requiredCapabilities": ["analysis"]})
        store.mark_assigned(task.task_id, "analyst-1")
        store.mark_completed(task.task_id, {"ok": True})
    """

    def __init__(self, default_reward: float = 0.01,
                 clock: Callable[[], float] = time.time):
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.RLock()
        self._default_reward = default_reward
        self._clock = clock

        log.info("TaskStore initialized")

    def create(self, task_config: Dict[str, Any]) -> Task:
        """Create a pending task from caller-supplied configuration."""
        caps = task_config.get(
            "requiredCapabilities", task_config.get("required_capabilities")
        ) or []
        if isinstance(caps, str):
            caps = [caps]

        try:
            reward = float(task_config.get("reward", self._default_reward))
        except (TypeError, ValueError):
            raise InvalidTaskConfig(f"Task reward is not a number: {task_config['reward']!r}")
        if reward < 0:
            raise InvalidTaskConfig(f"Task reward must be non-negative, got {reward}")

        priority = task_config.get("priority", TaskPriority.NORMAL)
        if not isinstance(priority, TaskPriority):
            try:
                priority = TaskPriority(str(priority).lower())
            except ValueError:
                raise InvalidTaskConfig(f"Unknown task priority: {priority!r}")

        now = self._clock()
        task = Task(
            task_id=task_config.get("id") or f"task-{uuid.uuid4().hex[:12]}",
            task_type=task_config.get("type"),
            description=task_config.get("description", ""),
            required_capabilities=frozenset(caps),
            priority=priority,
            reward=reward,
            created_at=now,
            metadata=dict(task_config.get("metadata") or {}),
        )
        task.history.append((TaskStatus.PENDING, now))

        with self._lock:
            if task.task_id in self._tasks:
                raise InvalidTaskConfig(f"Task id already exists: {task.task_id}")
            self._tasks[task.task_id] = task

        log.info(
            f"Task created: {task.task_id} (type={task.task_type}, "
            f"priority={task.priority.value}, reward={task.reward})"
        )
        return task

    def get(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def update(self, task_id: str, **patch: Any) -> Task:
        """Patch non-lifecycle fields (description, metadata, reward...)."""
        bad = _PROTECTED_FIELDS.intersection(patch)
        if bad:
            raise InvalidTaskConfig(f"Lifecycle fields cannot be patched: {sorted(bad)}")
        with self._lock:
            task = self.get(task_id)
            for key, value in patch.items():
                if not hasattr(task, key):
                    raise InvalidTaskConfig(f"Unknown task field: {key}")
                setattr(task, key, value)
            return task

    def mark_assigned(self, task_id: str, agent_id: str) -> Task:
        with self._lock:
            task = self._transition(task_id, TaskStatus.PENDING, TaskStatus.ASSIGNED)
            task.assigned_to = agent_id
            task.assigned_at = task.history[-1][1]
            task.attempts += 1
        log.info(f"Task {task_id} assigned to {agent_id} (attempt {task.attempts})")
        return task

    def mark_completed(self, task_id: str, result: Any = None,
                       agent_id: Optional[str] = None,
                       attempt: Optional[int] = None) -> Task:
        """Complete an assigned task.

        agent_id and attempt, when given, must match the current holder
        and assignment number. A late signal from an earlier assignment
        is rejected with InvalidTransition.
        """
        with self._lock:
            task = self._transition(task_id, TaskStatus.ASSIGNED, TaskStatus.COMPLETED,
                                    holder=agent_id, attempt=attempt)
            task.result = result
            task.completed_at = task.history[-1][1]
        log.info(f"Task {task_id} completed by {task.assigned_to}")
        return task

    def mark_failed(self, task_id: str, error: Optional[str] = None,
                    agent_id: Optional[str] = None,
                    attempt: Optional[int] = None) -> Task:
        with self._lock:
            task = self._transition(task_id, TaskStatus.ASSIGNED, TaskStatus.FAILED,
                                    holder=agent_id, attempt=attempt)
            task.error = error
            task.completed_at = task.history[-1][1]
        log.warning(f"Task {task_id} failed on {task.assigned_to}: {error}")
        return task

    def mark_timeout(self, task_id: str) -> Task:
        with self._lock:
            task = self._transition(task_id, TaskStatus.ASSIGNED, TaskStatus.TIMEOUT)
        log.warning(f"Task {task_id} timed out on {task.assigned_to}")
        return task

    def requeue(self, task_id: str) -> Task:
        """Return a timed-out task to pending so it can be reassigned."""
        with self._lock:
            task = self._transition(task_id, TaskStatus.TIMEOUT, TaskStatus.PENDING)
            task.last_holder = task.assigned_to
            task.assigned_to = None
            task.assigned_at = None
        log.debug(f"Task {task_id} requeued")
        return task

    def list_by_status(self, status: TaskStatus) -> List[Task]:
        with self._lock:
            return [t for t in self._tasks.values() if t.status == status]

    def get_statistics(self) -> Dict[str, int]:
        """Task counts per status plus total."""
        with self._lock:
            tasks = list(self._tasks.values())
        counts = {"total": len(tasks)}
        for status in TaskStatus:
            counts[status.value] = sum(1 for t in tasks if t.status == status)
        return counts

    def _transition(self, task_id: str, expected: TaskStatus,
                    target: TaskStatus, holder: Optional[str] = None,
                    attempt: Optional[int] = None) -> Task:
        # Caller holds self._lock
        task = self.get(task_id)
        if task.status != expected:
            raise InvalidTransition(task_id, task.status, target)
        stale_holder = holder is not None and task.assigned_to != holder
        stale_attempt = attempt is not None and task.attempts != attempt
        if stale_holder or stale_attempt:
            log.warning(
                f"Task {task_id}: ignoring stale {target.value} signal "
                f"(holder={holder}, attempt={attempt}; "
                f"current holder={task.assigned_to}, attempt={task.attempts})"
            )
            raise InvalidTransition(task_id, task.status, target)
        task.status = target
        task.history.append((target, self._clock()))
        return task
