"""Outbound collaborators: agent notification and payment settlement.

The coordinator only needs two opaque capabilities from the outside world:
- notify(endpoint, message): deliver a message to an agent, get its reply
- settle(agent_id, amount): pay an agent for completed work

HttpNotifier is the production notifier. It POSTs JSON envelopes with
aiohttp and keeps one circuit breaker per endpoint so a dead agent fails
fast instead of eating the full request timeout on every call.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from hive.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from hive.config import NotifierConfig
from hive.errors import NotificationFailure

log = logging.getLogger("hive.swarm.notifier")


class Notifier(ABC):
    """Delivers messages to agent endpoints."""

    @abstractmethod
    async def notify(self, endpoint: Optional[str], message: Dict[str, Any],
                     priority: str = "normal") -> Optional[Dict[str, Any]]:
        """Send message to endpoint and return the decoded reply, if any.

        Raises:
            NotificationFailure: endpoint unreachable or replied with an error
        """


class Settlement(ABC):
    """Pays agents for completed work."""

    @abstractmethod
    async def settle(self, agent_id: str, amount: float) -> None:
        ...


class LoggingSettlement(Settlement):
    """Records payouts in the log only; real settlement lives elsewhere."""

    async def settle(self, agent_id: str, amount: float) -> None:
        log.info(f"Settlement: pay {amount} to {agent_id}")


class HttpNotifier(Notifier):
    """
    aiohttp-based notifier.

    Usage:
        async with HttpNotifier(NotifierConfig()) as notifier:
            reply = await notifier.notify(
                "http://localhost:4001",
                {"type": "consensus-vote", "proposal": {...}},
            )
    """

    def __init__(self, config: Optional[NotifierConfig] = None) -> None:
        self._config = config or NotifierConfig()
        self._session: Optional[aiohttp.ClientSession] = None
        self._breakers: Dict[str, CircuitBreaker] = {}

        log.info(
            f"HttpNotifier initialized. "
            f"path={self._config.message_path} "
            f"timeout={self._config.timeout_sec}s "
            f"max_connections={self._config.max_connections}"
        )

    async def __aenter__(self) -> HttpNotifier:
        await self._ensure_session()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Create aiohttp session if not exists."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self._config.max_connections,
                ttl_dns_cache=300,
            )
            timeout = aiohttp.ClientTimeout(total=self._config.timeout_sec)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=timeout,
            )
            log.debug("Created aiohttp session with connection pool")
        return self._session

    async def close(self) -> None:
        """Close aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            log.debug("Closed aiohttp session")

    async def notify(self, endpoint: Optional[str], message: Dict[str, Any],
                     priority: str = "normal") -> Optional[Dict[str, Any]]:
        if not endpoint:
            raise NotificationFailure(str(endpoint), ValueError("agent has no endpoint"))
        url = endpoint.rstrip("/") + self._config.message_path
        body = {
            "fromAgent": self._config.sender,
            "message": message,
            "priority": priority,
        }
        breaker = self._breaker_for(endpoint)
        try:
            return await breaker.call(self._post, url, body)
        except CircuitBreakerOpen as e:
            raise NotificationFailure(endpoint, e) from e
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise NotificationFailure(endpoint, e) from e

    async def _post(self, url: str, body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        session = await self._ensure_session()
        async with session.post(url, json=body) as resp:
            resp.raise_for_status()
            if resp.content_type != "application/json":
                return None
            return await resp.json()

    def _breaker_for(self, endpoint: str) -> CircuitBreaker:
        breaker = self._breakers.get(endpoint)
        if breaker is None:
            breaker = CircuitBreaker(
                name=endpoint,
                failure_threshold=self._config.failure_threshold,
                recovery_timeout=self._config.recovery_timeout_sec,
            )
            self._breakers[endpoint] = breaker
        return breaker

    def get_stats(self) -> Dict[str, Any]:
        return {
            endpoint: breaker.get_stats()
            for endpoint, breaker in self._breakers.items()
        }
