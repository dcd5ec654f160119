"""Configuration loading and logging setup for the Hive swarm service."""

from __future__ import annotations

import logging
import sys
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from hive.errors import ConfigError


def load_yaml(path: Path) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"Required file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def setup_logging(cfg: dict) -> logging.Logger:
    log_cfg = cfg.get("logging", {})
    log_dir = Path(log_cfg.get("dir", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_level = getattr(logging, log_cfg.get("level", "INFO").upper(), logging.INFO)
    fmt     = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    logging.basicConfig(
        level=log_level, format=fmt, datefmt=datefmt,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_dir / "hive.log", encoding="utf-8"),
        ],
    )
    return logging.getLogger("hive")


@dataclass
class NotifierConfig:
    """Settings for the HTTP notification channel to agents."""
    message_path: str = "/api/swarm/message"
    sender: str = "queen"
    timeout_sec: float = 10.0
    max_connections: int = 100
    failure_threshold: int = 3
    recovery_timeout_sec: float = 60.0

    @classmethod
    def from_dict(cls, cfg: dict) -> NotifierConfig:
        n = cfg.get("notifier", {}) or {}
        conf = cls(
            message_path=n.get("message_path", cls.message_path),
            sender=n.get("sender", cls.sender),
            timeout_sec=float(n.get("timeout_sec", cls.timeout_sec)),
            max_connections=int(n.get("max_connections", cls.max_connections)),
            failure_threshold=int(n.get("failure_threshold", cls.failure_threshold)),
            recovery_timeout_sec=float(
                n.get("recovery_timeout_sec", cls.recovery_timeout_sec)
            ),
        )
        if conf.timeout_sec <= 0:
            raise ConfigError(f"notifier.timeout_sec must be > 0, got {conf.timeout_sec}")
        if conf.failure_threshold < 1:
            raise ConfigError("notifier.failure_threshold must be >= 1")
        return conf


@dataclass
class SwarmConfig:
    """Tunables for scheduling, monitoring and consensus."""
    swarm_id: str = field(default_factory=lambda: f"swarm-{uuid.uuid4().hex[:8]}")
    topology: str = "hierarchical"
    max_agents: Optional[int] = None
    consensus_threshold: float = 0.51

    task_timeout_sec: float = 300.0
    monitor_interval_sec: float = 30.0

    initial_reputation: float = 1.0
    min_reputation: float = 0.0
    max_reputation: float = 5.0
    timeout_penalty: float = 0.9
    failure_penalty: float = 0.9
    completion_bonus: float = 1.1

    default_reward: float = 0.01
    default_vote_timeout_sec: float = 60.0
    exclude_previous_holder: bool = False
    broadcast_retries: int = 0

    # Agents to pre-register at startup (list of registration dicts)
    agents: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, cfg: dict) -> SwarmConfig:
        s = dict(cfg.get("swarm", {}) or {})
        known = set(cls.__dataclass_fields__)
        unknown = set(s) - known
        if unknown:
            raise ConfigError(f"Unknown swarm config keys: {sorted(unknown)}")
        if s.get("swarm_id") is None:
            s.pop("swarm_id", None)
        conf = cls(**s)
        conf.validate()
        return conf

    def validate(self) -> None:
        if not 0.0 < self.consensus_threshold <= 1.0:
            raise ConfigError(
                f"consensus_threshold must be in (0, 1], got {self.consensus_threshold}"
            )
        if self.min_reputation > self.max_reputation:
            raise ConfigError("min_reputation must not exceed max_reputation")
        if not self.min_reputation <= self.initial_reputation <= self.max_reputation:
            raise ConfigError("initial_reputation must lie within reputation bounds")
        for name in ("task_timeout_sec", "monitor_interval_sec", "default_vote_timeout_sec"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0")
        if self.max_agents is not None and self.max_agents < 1:
            raise ConfigError("max_agents must be >= 1 or null")
        if self.broadcast_retries < 0:
            raise ConfigError("broadcast_retries must be >= 0")
