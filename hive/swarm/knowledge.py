"""Shared knowledge map and best-effort broadcast to the swarm.

Task results and shared patterns land in one append-mostly map that
any component may read. Broadcasts are fire-and-forget: share() returns
once the entry is stored and deliveries are scheduled, and a failed
delivery is logged, optionally retried, then dropped.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Set

from hive.errors import NotificationFailure
from hive.swarm.agent_registry import Agent, AgentRegistry
from hive.swarm.notifier import Notifier

log = logging.getLogger("hive.swarm.knowledge")


class KnowledgeBase:
    """Thread-safe key/value map shared by the whole coordinator."""

    def __init__(self):
        self._entries: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def store_task_result(self, task_id: str, result: Any) -> None:
        self.put(f"task-result-{task_id}", result)

    def get_task_result(self, task_id: str, default: Any = None) -> Any:
        return self.get(f"task-result-{task_id}", default)

    def get_pattern(self, pattern: str) -> Optional[Dict[str, Any]]:
        return self.get(f"knowledge-{pattern}")

    def __len__(self) -> int:
        return len(self._entries)


class KnowledgeBroadcaster:
    """
    Stores shared knowledge and fans messages out to every active agent.

    Example:
        broadcaster = KnowledgeBroadcaster(registry, knowledge, notifier)
        await broadcaster.share("arbitrage-window", {"spread": 0.4})
        await broadcaster.drain()   # only if you need to wait for delivery
    """

    def __init__(
        self,
        registry: AgentRegistry,
        knowledge: KnowledgeBase,
        notifier: Notifier,
        retries: int = 0,
        retry_delay: float = 1.0,
        shared_by: str = "queen",
        clock: Callable[[], float] = time.time,
    ):
        self._registry = registry
        self._knowledge = knowledge
        self._notifier = notifier
        self._retries = retries
        self._retry_delay = retry_delay
        self._shared_by = shared_by
        self._clock = clock

        self._inflight: Set[asyncio.Task] = set()
        self.delivered = 0
        self.failed = 0

    async def share(self, pattern: str, data: Any) -> Dict[str, Any]:
        """Store a knowledge entry and broadcast it to the swarm."""
        entry = {
            "pattern": pattern,
            "data": data,
            "sharedBy": self._shared_by,
            "timestamp": self._clock(),
        }
        self._knowledge.put(f"knowledge-{pattern}", entry)

        scheduled = self.broadcast({
            "type": "knowledge-share",
            "pattern": pattern,
            "data": data,
        })
        log.info(f"Shared knowledge pattern '{pattern}' with {scheduled} agent(s)")
        return entry

    def broadcast(self, message: Dict[str, Any], priority: str = "normal") -> int:
        """Schedule delivery to all active agents; returns how many."""
        agents = self._registry.list_active()
        for agent in agents:
            task = asyncio.create_task(
                self._deliver(agent, message, priority),
                name=f"broadcast:{agent.agent_id}",
            )
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
        return len(agents)

    async def drain(self) -> None:
        """Wait for all scheduled deliveries to finish."""
        while self._inflight:
            batch = list(self._inflight)
            results = await asyncio.gather(*batch, return_exceptions=True)
            self._inflight.difference_update(batch)
            for result in results:
                if isinstance(result, Exception):
                    log.error(f"Broadcast delivery crashed: {result}")

    async def cancel_pending(self) -> None:
        batch = list(self._inflight)
        for task in batch:
            task.cancel()
        await asyncio.gather(*batch, return_exceptions=True)
        self._inflight.difference_update(batch)

    async def _deliver(self, agent: Agent, message: Dict[str, Any],
                       priority: str) -> bool:
        delay = self._retry_delay
        attempts = self._retries + 1

        for attempt in range(attempts):
            try:
                await self._notifier.notify(agent.endpoint, message, priority=priority)
                self.delivered += 1
                return True
            except NotificationFailure as e:
                if attempt < attempts - 1:
                    log.warning(
                        f"Broadcast to {agent.agent_id} attempt {attempt + 1} failed: {e}. "
                        f"Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                    delay *= 2.0
                else:
                    log.error(f"Broadcast to {agent.agent_id} failed: {e}")

        self.failed += 1
        return False

    @property
    def pending(self) -> int:
        return len(self._inflight)
