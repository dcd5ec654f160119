"""Agent Registry for swarm coordination.

Owns every Agent record in the swarm:
- Registration and lookup
- Activation / deactivation (no hard delete)
- Reputation, earnings and workload bookkeeping

All mutations go through the registry under a single lock so the
scheduler, the task monitor and request handlers never race on the
same agent.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from hive.errors import AgentNotFound, InvalidAgentConfig, InvalidTaskConfig, SwarmFull

log = logging.getLogger("hive.swarm.registry")


class AgentStatus(Enum):
    """Agent availability."""
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass
class Agent:
    """A worker registered with the swarm."""
    agent_id: str
    capabilities: FrozenSet[str]
    endpoint: Optional[str] = None
    agent_type: Optional[str] = None
    status: AgentStatus = AgentStatus.ACTIVE

    assigned_task_ids: List[str] = field(default_factory=list)
    earnings: float = 0.0
    reputation: float = 1.0

    joined_at: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def workload(self) -> int:
        return len(self.assigned_task_ids)

    @property
    def is_active(self) -> bool:
        return self.status == AgentStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.agent_id,
            "type": self.agent_type,
            "capabilities": sorted(self.capabilities),
            "endpoint": self.endpoint,
            "status": self.status.value,
            "tasks": list(self.assigned_task_ids),
            "earnings": self.earnings,
            "reputation": self.reputation,
            "joined_at": self.joined_at,
            "metadata": self.metadata,
        }


class AgentRegistry:
    """
    Central registry of swarm agents.

    Iteration order is registration order; the scheduler relies on it
    for tie-breaking and consensus/broadcast use it as a stable basis.

    Example:
        registry = AgentRegistry()
        agent = registry.register({
            "id": "analyst-1",
            "endpoint": "http://localhost:4001",
            "capabilities": ["analysis", "research"],
        })
        registry.add_task(agent.agent_id, "task-42")
    """

    def __init__(
        self,
        max_agents: Optional[int] = None,
        initial_reputation: float = 1.0,
        min_reputation: float = 0.0,
        max_reputation: float = 5.0,
    ):
        self._agents: Dict[str, Agent] = {}
        self._lock = threading.RLock()
        self._max_agents = max_agents
        self._initial_reputation = initial_reputation
        self._min_reputation = min_reputation
        self._max_reputation = max_reputation

        log.info(
            f"AgentRegistry initialized (max_agents={max_agents}, "
            f"reputation=[{min_reputation}, {max_reputation}])"
        )

    def register(self, agent_config: Dict[str, Any]) -> Agent:
        """Register a new agent and return its record."""
        capabilities = agent_config.get("capabilities") or []
        if isinstance(capabilities, str):
            capabilities = [capabilities]
        if not capabilities:
            raise InvalidAgentConfig("Agent must declare at least one capability")

        agent_id = agent_config.get("id") or f"agent-{uuid.uuid4().hex[:12]}"

        with self._lock:
            if agent_id in self._agents:
                raise InvalidAgentConfig(f"Agent id already registered: {agent_id}")
            if self._max_agents is not None and len(self._agents) >= self._max_agents:
                raise SwarmFull(
                    f"Swarm is full ({len(self._agents)}/{self._max_agents} agents)"
                )

            agent = Agent(
                agent_id=agent_id,
                capabilities=frozenset(capabilities),
                endpoint=agent_config.get("endpoint"),
                agent_type=agent_config.get("type"),
                reputation=self._initial_reputation,
                metadata=dict(agent_config.get("metadata") or {}),
            )
            self._agents[agent_id] = agent

        log.info(
            f"Agent registered: {agent_id} (type={agent.agent_type}, "
            f"capabilities={sorted(agent.capabilities)})"
        )
        return agent

    def get(self, agent_id: str) -> Agent:
        """Get agent by ID, raising AgentNotFound if unknown."""
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFound(agent_id)
        return agent

    def list_all(self) -> List[Agent]:
        with self._lock:
            return list(self._agents.values())

    def list_active(self) -> List[Agent]:
        """Active agents in registration order."""
        with self._lock:
            return [a for a in self._agents.values() if a.is_active]

    def deactivate(self, agent_id: str) -> None:
        with self._lock:
            agent = self.get(agent_id)
            agent.status = AgentStatus.INACTIVE
        log.info(f"Agent {agent_id} marked inactive")

    def activate(self, agent_id: str) -> None:
        with self._lock:
            agent = self.get(agent_id)
            agent.status = AgentStatus.ACTIVE
        log.info(f"Agent {agent_id} marked active")

    def update_reputation(self, agent_id: str, new_value: float) -> float:
        """Set reputation, clamped to the configured bounds."""
        with self._lock:
            agent = self.get(agent_id)
            agent.reputation = self._clamp(new_value)
            return agent.reputation

    def scale_reputation(self, agent_id: str, factor: float) -> float:
        """Multiply reputation by factor as one atomic read-modify-write."""
        with self._lock:
            agent = self.get(agent_id)
            old = agent.reputation
            agent.reputation = self._clamp(old * factor)
            log.debug(
                f"Agent {agent_id} reputation: {old:.3f} -> {agent.reputation:.3f}"
            )
            return agent.reputation

    def record_earnings(self, agent_id: str, amount: float) -> float:
        if amount < 0:
            raise InvalidTaskConfig(f"Earnings must be non-negative, got {amount}")
        with self._lock:
            agent = self.get(agent_id)
            agent.earnings += amount
            return agent.earnings

    def add_task(self, agent_id: str, task_id: str) -> None:
        with self._lock:
            agent = self.get(agent_id)
            if task_id not in agent.assigned_task_ids:
                agent.assigned_task_ids.append(task_id)

    def remove_task(self, agent_id: str, task_id: str) -> bool:
        with self._lock:
            agent = self.get(agent_id)
            if task_id not in agent.assigned_task_ids:
                return False
            agent.assigned_task_ids.remove(task_id)
            return True

    def get_statistics(self) -> Dict[str, Any]:
        """Get registry statistics."""
        with self._lock:
            agents = list(self._agents.values())
        active = sum(1 for a in agents if a.is_active)
        return {
            "total": len(agents),
            "active": active,
            "inactive": len(agents) - active,
            "total_earnings": sum(a.earnings for a in agents),
        }

    def _clamp(self, value: float) -> float:
        return max(self._min_reputation, min(value, self._max_reputation))
