"""Swarm coordination for Hive.

- Agent registration and reputation tracking
- Task lifecycle with compare-and-swap transitions
- Workload-aware scheduling
- Timeout detection and reassignment
- Quorum voting and knowledge broadcast
"""

from .agent_registry import Agent, AgentRegistry, AgentStatus
from .task_store import Task, TaskPriority, TaskStatus, TaskStore
from .scheduler import Scheduler, score_agent
from .task_monitor import TaskMonitor
from .consensus import ConsensusCoordinator, VoteResult
from .knowledge import KnowledgeBase, KnowledgeBroadcaster
from .notifier import HttpNotifier, LoggingSettlement, Notifier, Settlement
from .coordinator import SwarmCoordinator

__all__ = [
    # Registry
    "AgentRegistry",
    "Agent",
    "AgentStatus",
    # Tasks
    "TaskStore",
    "Task",
    "TaskPriority",
    "TaskStatus",
    # Scheduling and supervision
    "Scheduler",
    "score_agent",
    "TaskMonitor",
    # Consensus and knowledge
    "ConsensusCoordinator",
    "VoteResult",
    "KnowledgeBase",
    "KnowledgeBroadcaster",
    # Collaborators
    "Notifier",
    "HttpNotifier",
    "Settlement",
    "LoggingSettlement",
    # Facade
    "SwarmCoordinator",
]
