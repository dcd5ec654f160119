"""Task Monitor: supervises in-flight tasks.

A single periodic scan looks at every assigned task:
- Older than the timeout → mark timeout, penalize the holder, requeue
  and hand the task to the scheduler again
- Pending tasks are offered to the scheduler once more on every scan

Completion and failure signals arrive from outside through complete()
and fail(). Rewards and penalties are applied only after the store's
compare-and-swap transition succeeds, so each terminal event is applied
exactly once even if a completion races a timeout.

Detection latency is at most one polling interval past the timeout.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from hive.errors import InvalidTransition
from hive.swarm.agent_registry import AgentRegistry
from hive.swarm.knowledge import KnowledgeBase, KnowledgeBroadcaster
from hive.swarm.notifier import Settlement
from hive.swarm.scheduler import Scheduler
from hive.swarm.task_store import Task, TaskStatus, TaskStore

log = logging.getLogger("hive.swarm.monitor")


class TaskMonitor:
    """
    Background supervisor for assigned tasks.

    Example:
        monitor = TaskMonitor(registry, store, scheduler, knowledge,
                              timeout_sec=300, interval_sec=30)
        await monitor.start()
        ...
        await monitor.complete(task_id, {"answer": 42})
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        registry: AgentRegistry,
        store: TaskStore,
        scheduler: Scheduler,
        knowledge: KnowledgeBase,
        broadcaster: Optional[KnowledgeBroadcaster] = None,
        settlement: Optional[Settlement] = None,
        timeout_sec: float = 300.0,
        interval_sec: float = 30.0,
        timeout_penalty: float = 0.9,
        failure_penalty: float = 0.9,
        completion_bonus: float = 1.1,
        redistribute: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self._registry = registry
        self._store = store
        self._scheduler = scheduler
        self._knowledge = knowledge
        self._broadcaster = broadcaster
        self._settlement = settlement

        self._timeout_sec = timeout_sec
        self._interval_sec = interval_sec
        self._timeout_penalty = timeout_penalty
        self._failure_penalty = failure_penalty
        self._completion_bonus = completion_bonus
        self._redistribute = redistribute
        self._clock = clock

        self._running = False
        self._monitor_task: Optional[asyncio.Task] = None
        self.scans = 0

        log.info(
            f"TaskMonitor initialized (timeout={timeout_sec}s, "
            f"interval={interval_sec}s)"
        )

    @property
    def running(self) -> bool:
        return self._running

    async def complete(self, task_id: str, result: Any = None,
                       agent_id: Optional[str] = None,
                       attempt: Optional[int] = None) -> Task:
        """Apply a completion signal: pay and reward the holder once.

        Raises InvalidTransition if the task is not currently assigned,
        or if agent_id / attempt name an earlier assignment.
        """
        task = self._store.mark_completed(task_id, result,
                                          agent_id=agent_id, attempt=attempt)
        agent_id = task.assigned_to

        if agent_id:
            self._registry.record_earnings(agent_id, task.reward)
            reputation = self._registry.scale_reputation(agent_id, self._completion_bonus)
            self._registry.remove_task(agent_id, task_id)
            log.info(
                f"Agent {agent_id} earned {task.reward} for task {task_id} "
                f"(reputation={reputation:.3f})"
            )
            await self._settle(agent_id, task.reward)

        self._knowledge.store_task_result(task_id, result)

        if self._broadcaster is not None:
            self._broadcaster.broadcast({
                "type": "task-completed",
                "taskId": task_id,
                "result": result,
            })
        return task

    async def fail(self, task_id: str, reason: Optional[str] = None,
                   agent_id: Optional[str] = None,
                   attempt: Optional[int] = None) -> Task:
        """Apply a failure signal: release the task and penalize the holder."""
        task = self._store.mark_failed(task_id, reason,
                                       agent_id=agent_id, attempt=attempt)
        agent_id = task.assigned_to
        if agent_id:
            self._registry.scale_reputation(agent_id, self._failure_penalty)
            self._registry.remove_task(agent_id, task_id)
        return task

    async def check_once(self) -> Dict[str, List[str]]:
        """Run one monitoring pass."""
        now = self._clock()
        timed_out: List[str] = []
        reassigned: List[str] = []

        for task in self._store.list_by_status(TaskStatus.ASSIGNED):
            started = task.assigned_at if task.assigned_at is not None else task.created_at
            if now - started <= self._timeout_sec:
                continue
            try:
                self._store.mark_timeout(task.task_id)
            except InvalidTransition:
                # Completed or failed while we were looking
                continue
            timed_out.append(task.task_id)
            if await self._recover(task) is not None:
                reassigned.append(task.task_id)

        redistributed: List[str] = []
        if self._redistribute:
            redistributed = await self._scheduler.redistribute()

        self.scans += 1
        return {
            "timed_out": timed_out,
            "reassigned": reassigned,
            "redistributed": redistributed,
        }

    async def _recover(self, task: Task) -> Optional[str]:
        """Penalize the holder of a timed-out task and reassign it."""
        task_id = task.task_id
        holder = task.assigned_to
        if holder:
            reputation = self._registry.scale_reputation(holder, self._timeout_penalty)
            self._registry.remove_task(holder, task_id)
            log.warning(
                f"Agent {holder} timed out on task {task_id} "
                f"(reputation={reputation:.3f})"
            )

        self._store.requeue(task_id)
        try:
            agent = await self._scheduler.assign_and_notify(task_id)
        except InvalidTransition:
            # Redistributed concurrently
            return None

        if agent is None:
            log.warning(f"Task {task_id} timed out and no agent is eligible, left pending")
            return None
        log.info(f"Task {task_id} reassigned {holder} -> {agent.agent_id}")
        return agent.agent_id

    async def _settle(self, agent_id: str, amount: float) -> None:
        if self._settlement is None:
            return
        try:
            await self._settlement.settle(agent_id, amount)
        except Exception as e:
            # Recorded earnings stand even if the payout fails
            log.error(f"Settlement of {amount} to {agent_id} failed: {e}")

    async def start(self) -> None:
        """Start the periodic scan."""
        if self._running:
            log.warning("TaskMonitor already running")
            return

        self._running = True
        self._monitor_task = asyncio.create_task(self._monitor_loop())
        log.info("TaskMonitor started")

    async def stop(self) -> None:
        """Stop the periodic scan."""
        self._running = False
        if self._monitor_task:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None
        log.info("TaskMonitor stopped")

    async def _monitor_loop(self) -> None:
        while self._running:
            try:
                await self.check_once()
                await asyncio.sleep(self._interval_sec)
            except asyncio.CancelledError:
                break
            except Exception as e:
                log.error(f"Monitor loop error: {e}")
                await asyncio.sleep(self._interval_sec)
