"""Scheduler: picks the best agent for a task and performs the assignment.

Score = reputation / (workload + 1). Normalizing by workload keeps a
single high-reputation agent from taking every task while still
favouring agents with a good track record.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from hive.errors import InvalidTransition, NotificationFailure
from hive.swarm.agent_registry import Agent, AgentRegistry
from hive.swarm.notifier import Notifier
from hive.swarm.task_store import Task, TaskStatus, TaskStore

log = logging.getLogger("hive.swarm.scheduler")


def score_agent(agent: Agent) -> float:
    return agent.reputation / (agent.workload + 1)


class Scheduler:
    """
    Assigns tasks to the highest-scoring eligible agent.

    Selection plus the paired store/registry writes run under one lock,
    so two concurrent assignments never read the same stale workload.
    """

    def __init__(self, registry: AgentRegistry, store: TaskStore,
                 notifier: Optional[Notifier] = None,
                 exclude_previous_holder: bool = False):
        self._registry = registry
        self._store = store
        self._notifier = notifier
        # When False a timed-out holder may win the task back if it still
        # scores highest; its reputation keeps eroding on each timeout.
        self._exclude_previous_holder = exclude_previous_holder
        self._lock = threading.RLock()

    def select_best_agent(self, task: Task,
                          exclude: Iterable[str] = ()) -> Optional[Agent]:
        """Return the best eligible agent, or None if nobody qualifies."""
        excluded = set(exclude)
        best: Optional[Agent] = None
        best_score = 0.0

        for agent in self._registry.list_active():
            if agent.agent_id in excluded:
                continue
            if not task.required_capabilities <= agent.capabilities:
                continue
            score = score_agent(agent)
            # Strict comparison: earlier registration wins ties
            if best is None or score > best_score:
                best, best_score = agent, score

        if best is None:
            log.debug(f"No eligible agent for task {task.task_id}")
        else:
            log.debug(
                f"Selected agent {best.agent_id} for task {task.task_id} "
                f"(score={best_score:.3f})"
            )
        return best

    def assign(self, task_id: str, exclude: Iterable[str] = ()) -> Optional[Agent]:
        """Select an agent for a pending task and record the assignment.

        Returns the agent, or None when the task stays pending.
        Raises InvalidTransition if the task is no longer pending.
        """
        with self._lock:
            task = self._store.get(task_id)
            if task.status != TaskStatus.PENDING:
                raise InvalidTransition(task_id, task.status, TaskStatus.ASSIGNED)

            excluded = set(exclude)
            if self._exclude_previous_holder and task.last_holder:
                excluded.add(task.last_holder)

            agent = self.select_best_agent(task, exclude=excluded)
            if agent is None:
                return None

            self._store.mark_assigned(task_id, agent.agent_id)
            self._registry.add_task(agent.agent_id, task_id)
            return agent

    async def create_and_assign(self, task_config: Dict[str, Any]) -> Task:
        """Create a task and hand it to the best agent, if any."""
        task = self._store.create(task_config)
        agent = self.assign(task.task_id)
        if agent is None:
            log.warning(f"No suitable agent for task {task.task_id}, left pending")
        else:
            await self.notify_assignment(task, agent)
        return task

    async def assign_and_notify(self, task_id: str,
                                exclude: Iterable[str] = ()) -> Optional[Agent]:
        agent = self.assign(task_id, exclude=exclude)
        if agent is not None:
            await self.notify_assignment(self._store.get(task_id), agent)
        return agent

    async def redistribute(self) -> List[str]:
        """Offer every pending task to the scheduler again.

        Returns the ids of tasks that found an agent.
        """
        assigned = []
        for task in self._store.list_by_status(TaskStatus.PENDING):
            try:
                agent = await self.assign_and_notify(task.task_id)
            except InvalidTransition:
                # Picked up concurrently
                continue
            if agent is not None:
                assigned.append(task.task_id)

        if assigned:
            log.info(f"Redistributed {len(assigned)} pending task(s)")
        return assigned

    async def notify_assignment(self, task: Task, agent: Agent) -> None:
        """Send the task-request notice. Failures are logged, not raised."""
        if self._notifier is None:
            return
        message = {"type": "task-request", "task": task.to_dict()}
        try:
            await self._notifier.notify(
                agent.endpoint, message, priority=task.priority.value
            )
        except NotificationFailure as e:
            # Task stays assigned; the monitor's timeout path recovers it
            log.error(f"Failed to notify {agent.agent_id} of task {task.task_id}: {e}")
