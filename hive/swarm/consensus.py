"""Consensus Coordinator: quorum votes across the active swarm.

Every active agent is asked in parallel. Replies are collected until all
have answered or the deadline passes; stragglers are cancelled and left
out of the tally. The plurality winner is always reported, and
consensus_reached says whether it cleared the quorum.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from hive.errors import NotificationFailure
from hive.swarm.agent_registry import Agent, AgentRegistry
from hive.swarm.notifier import Notifier

log = logging.getLogger("hive.swarm.consensus")

DEFAULT_OPTIONS = ("yes", "no")


@dataclass
class VoteResult:
    """Outcome of one consensus round."""
    proposal_id: str
    topic: str
    winner: Optional[str]
    tally: Dict[str, int]
    total_votes: int
    required_votes: int
    eligible: int
    consensus_reached: bool
    completed_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "proposal": self.proposal_id,
            "topic": self.topic,
            "winner": self.winner,
            "votes": dict(self.tally),
            "totalVotes": self.total_votes,
            "requiredVotes": self.required_votes,
            "eligible": self.eligible,
            "consensus": self.consensus_reached,
        }


def required_votes(active_agents: int, threshold: float) -> int:
    # round() first so 100 * 0.51 does not ceil up to 52
    return math.ceil(round(active_agents * threshold, 9))


def plurality(tally: Dict[str, int], options: Sequence[str]) -> Optional[str]:
    """Option with the most votes; ties go to the option listed first."""
    winner = None
    best = 0
    for option in options:
        count = tally.get(option, 0)
        if count > best:
            winner, best = option, count
    return winner


class ConsensusCoordinator:
    """
    Runs quorum votes across active agents.

    Example:
        consensus = ConsensusCoordinator(registry, notifier, threshold=0.51)
        result = await consensus.vote("rebalance-treasury", timeout_sec=30)
        if result.consensus_reached and result.winner == "yes":
            ...
    """

    def __init__(
        self,
        registry: AgentRegistry,
        notifier: Notifier,
        threshold: float = 0.51,
        default_timeout_sec: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self._registry = registry
        self._notifier = notifier
        self._threshold = threshold
        self._default_timeout_sec = default_timeout_sec
        self._clock = clock
        self._history: List[VoteResult] = []

        log.info(f"ConsensusCoordinator initialized (threshold={threshold})")

    async def vote(
        self,
        topic: str,
        options: Sequence[str] = DEFAULT_OPTIONS,
        timeout_sec: Optional[float] = None,
    ) -> VoteResult:
        """Ask every active agent to vote on topic and tally the replies."""
        options = list(options)
        if not options:
            raise ValueError("A vote needs at least one option")
        timeout = self._default_timeout_sec if timeout_sec is None else timeout_sec

        agents = self._registry.list_active()
        needed = required_votes(len(agents), self._threshold)
        proposal = {
            "id": f"proposal-{uuid.uuid4().hex[:12]}",
            "topic": topic,
            "options": options,
            "deadline": self._clock() + timeout,
            "requiredVotes": needed,
        }
        log.info(
            f"Consensus requested on '{topic}' "
            f"({len(agents)} eligible, {needed} required)"
        )

        ballots = await self._collect(agents, proposal, options, timeout)

        tally: Dict[str, int] = {}
        for option in options:
            count = sum(1 for b in ballots.values() if b == option)
            if count:
                tally[option] = count

        winner = plurality(tally, options)
        top = tally.get(winner, 0) if winner else 0
        result = VoteResult(
            proposal_id=proposal["id"],
            topic=topic,
            winner=winner,
            tally=tally,
            total_votes=len(ballots),
            required_votes=needed,
            eligible=len(agents),
            consensus_reached=winner is not None and top >= needed,
            completed_at=self._clock(),
        )
        self._history.append(result)

        log.info(
            f"Consensus result for '{topic}': {winner} "
            f"({top}/{len(ballots)} votes, consensus={result.consensus_reached})"
        )
        return result

    async def _collect(
        self,
        agents: List[Agent],
        proposal: Dict[str, Any],
        options: Sequence[str],
        timeout: float,
    ) -> Dict[str, str]:
        """Gather valid ballots keyed by agent id until done or deadline."""
        if not agents:
            return {}

        requests = {
            asyncio.create_task(
                self._request_vote(agent, proposal, options),
                name=f"vote:{agent.agent_id}",
            ): agent
            for agent in agents
        }
        try:
            done, pending = await asyncio.wait(requests, timeout=timeout)
            if pending:
                log.warning(
                    f"{len(pending)} agent(s) did not vote on {proposal['id']} "
                    f"before the deadline"
                )
        finally:
            # Late replies are discarded, also when the vote itself is cancelled
            unfinished = [task for task in requests if not task.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)

        ballots: Dict[str, str] = {}
        for task in done:
            agent = requests[task]
            if task.exception() is not None:
                log.error(f"Agent {agent.agent_id} vote crashed: {task.exception()}")
                continue
            ballot = task.result()
            if ballot is not None:
                ballots[agent.agent_id] = ballot
        return ballots

    async def _request_vote(
        self,
        agent: Agent,
        proposal: Dict[str, Any],
        options: Sequence[str],
    ) -> Optional[str]:
        try:
            reply = await self._notifier.notify(
                agent.endpoint,
                {"type": "consensus-vote", "proposal": proposal},
                priority="high",
            )
        except NotificationFailure as e:
            log.error(f"Agent {agent.agent_id} vote failed: {e}")
            return None

        ballot = reply.get("vote") if isinstance(reply, dict) else None
        if ballot not in options:
            log.warning(f"Agent {agent.agent_id} returned invalid ballot: {ballot!r}")
            return None
        return ballot

    def get_history(self) -> List[VoteResult]:
        return list(self._history)

    def get_statistics(self) -> Dict[str, Any]:
        """Get voting statistics."""
        total = len(self._history)
        reached = sum(1 for r in self._history if r.consensus_reached)
        return {
            "votes_held": total,
            "consensus_reached": reached,
            "consensus_rate": reached / total if total > 0 else 0.0,
        }
