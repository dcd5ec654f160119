"""SwarmCoordinator: the surface request handlers talk to.

Builds the registry, task store, scheduler, monitor, consensus and
broadcaster around one configuration, one notifier and one clock, and
exposes the operations callers need. Nothing here is a singleton; each
coordinator owns its own records.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence

from hive.config import SwarmConfig
from hive.swarm.agent_registry import Agent, AgentRegistry
from hive.swarm.consensus import DEFAULT_OPTIONS, ConsensusCoordinator, VoteResult
from hive.swarm.knowledge import KnowledgeBase, KnowledgeBroadcaster
from hive.swarm.notifier import LoggingSettlement, Notifier, Settlement
from hive.swarm.scheduler import Scheduler
from hive.swarm.task_monitor import TaskMonitor
from hive.swarm.task_store import Task, TaskStore

log = logging.getLogger("hive.swarm.coordinator")


class SwarmCoordinator:
    """
    Facade over the swarm components.

    Example:
        async with SwarmCoordinator(SwarmConfig(), HttpNotifier()) as swarm:
            await swarm.register_agent({"endpoint": "http://localhost:4001",
                                        "capabilities": ["analysis"]})
            task = await swarm.create_task({"type": "analysis",
                                            "requiredCapabilities": ["analysis"],
                                            "reward": 0.05})
            ...
            await swarm.complete_task(task.task_id, {"report": "..."})
    """

    def __init__(
        self,
        config: SwarmConfig,
        notifier: Notifier,
        settlement: Optional[Settlement] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self._notifier = notifier

        self.registry = AgentRegistry(
            max_agents=config.max_agents,
            initial_reputation=config.initial_reputation,
            min_reputation=config.min_reputation,
            max_reputation=config.max_reputation,
        )
        self.store = TaskStore(default_reward=config.default_reward, clock=clock)
        self.knowledge = KnowledgeBase()
        self.scheduler = Scheduler(
            self.registry, self.store, notifier,
            exclude_previous_holder=config.exclude_previous_holder,
        )
        self.broadcaster = KnowledgeBroadcaster(
            self.registry, self.knowledge, notifier,
            retries=config.broadcast_retries,
            clock=clock,
        )
        self.monitor = TaskMonitor(
            self.registry, self.store, self.scheduler, self.knowledge,
            broadcaster=self.broadcaster,
            settlement=settlement or LoggingSettlement(),
            timeout_sec=config.task_timeout_sec,
            interval_sec=config.monitor_interval_sec,
            timeout_penalty=config.timeout_penalty,
            failure_penalty=config.failure_penalty,
            completion_bonus=config.completion_bonus,
            clock=clock,
        )
        self.consensus = ConsensusCoordinator(
            self.registry, notifier,
            threshold=config.consensus_threshold,
            default_timeout_sec=config.default_vote_timeout_sec,
            clock=clock,
        )

        log.info(
            f"SwarmCoordinator {config.swarm_id} initialized "
            f"(topology={config.topology})"
        )

    async def __aenter__(self) -> SwarmCoordinator:
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()

    async def start(self) -> None:
        await self.monitor.start()

    async def stop(self) -> None:
        await self.monitor.stop()
        await self.broadcaster.drain()

    async def register_agent(self, agent_config: Dict[str, Any]) -> Agent:
        """Register an agent and offer it any work that is still pending."""
        agent = self.registry.register(agent_config)
        log.info(f"Agent {agent.agent_id} joined swarm {self.config.swarm_id}")
        await self.scheduler.redistribute()
        return agent

    def deactivate_agent(self, agent_id: str) -> None:
        self.registry.deactivate(agent_id)

    def activate_agent(self, agent_id: str) -> None:
        self.registry.activate(agent_id)

    def get_agent(self, agent_id: str) -> Agent:
        return self.registry.get(agent_id)

    async def create_task(self, task_config: Dict[str, Any]) -> Task:
        return await self.scheduler.create_and_assign(task_config)

    def get_task(self, task_id: str) -> Task:
        return self.store.get(task_id)

    async def complete_task(self, task_id: str, result: Any = None,
                            agent_id: Optional[str] = None,
                            attempt: Optional[int] = None) -> Task:
        return await self.monitor.complete(task_id, result,
                                           agent_id=agent_id, attempt=attempt)

    async def fail_task(self, task_id: str, reason: Optional[str] = None,
                        agent_id: Optional[str] = None,
                        attempt: Optional[int] = None) -> Task:
        return await self.monitor.fail(task_id, reason,
                                       agent_id=agent_id, attempt=attempt)

    async def vote(
        self,
        topic: str,
        options: Sequence[str] = DEFAULT_OPTIONS,
        timeout_sec: Optional[float] = None,
    ) -> VoteResult:
        return await self.consensus.vote(topic, options, timeout_sec)

    async def share_knowledge(self, pattern: str, data: Any) -> Dict[str, Any]:
        return await self.broadcaster.share(pattern, data)

    def get_statistics(self) -> Dict[str, Any]:
        """Snapshot of swarm size, task progress, earnings and knowledge."""
        agents = self.registry.get_statistics()
        return {
            "swarm_id": self.config.swarm_id,
            "topology": self.config.topology,
            "agents": {
                "total": agents["total"],
                "active": agents["active"],
                "inactive": agents["inactive"],
            },
            "tasks": self.store.get_statistics(),
            "total_earnings": agents["total_earnings"],
            "knowledge_size": len(self.knowledge),
            "votes_held": self.consensus.get_statistics()["votes_held"],
        }
