"""Error taxonomy for swarm coordination.

Structural errors (unknown ids, illegal state changes) propagate to the
caller. NotificationFailure is raised by notifiers and absorbed per agent
by the components that fan out to the swarm.
"""

from __future__ import annotations

from typing import Any, Optional


class SwarmError(Exception):
    """Base class for all swarm coordination errors."""


class NotFound(SwarmError, KeyError):
    """Unknown agent or task id."""

    def __init__(self, kind: str, item_id: str):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} not found: {item_id}")

    def __str__(self) -> str:
        return self.args[0]


class AgentNotFound(NotFound):
    def __init__(self, agent_id: str):
        super().__init__("agent", agent_id)


class TaskNotFound(NotFound):
    def __init__(self, task_id: str):
        super().__init__("task", task_id)


class InvalidTransition(SwarmError):
    """A task status change was attempted from the wrong source state.

    Nothing was modified. Callers should re-read the task.
    """

    def __init__(self, task_id: str, current: Any, target: Any):
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(
            f"Task {task_id}: cannot move {_name(current)} -> {_name(target)}"
        )


class InvalidAgentConfig(SwarmError, ValueError):
    """Agent registration input is unusable."""


class InvalidTaskConfig(SwarmError, ValueError):
    """Task creation or patch input is unusable."""


class SwarmFull(SwarmError):
    """Registration refused because max_agents is reached."""


class ConfigError(SwarmError, ValueError):
    """Configuration value out of range."""


class NotificationFailure(SwarmError):
    """An agent endpoint could not be reached or answered with an error."""

    def __init__(self, endpoint: str, cause: Optional[BaseException] = None):
        self.endpoint = endpoint
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Notification to {endpoint} failed{detail}")


def _name(status: Any) -> str:
    return getattr(status, "value", str(status))
