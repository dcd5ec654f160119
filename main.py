"""
Hive — Entry Point
Starts the swarm coordinator with the HTTP notifier and runs the task
monitor until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

from hive import __version__
from hive.config import NotifierConfig, SwarmConfig, load_yaml, setup_logging
from hive.errors import SwarmError
from hive.swarm import HttpNotifier, LoggingSettlement, SwarmCoordinator


# ────────────────────────────────────────────────────────────────────
ROOT_DIR    = Path(__file__).parent.resolve()
CONFIG_PATH = ROOT_DIR / "config.yaml"


async def register_configured_agents(swarm: SwarmCoordinator,
                                     logger: logging.Logger) -> None:
    for agent_cfg in swarm.config.agents:
        try:
            await swarm.register_agent(agent_cfg)
        except SwarmError as e:
            logger.error(f"Skipping configured agent {agent_cfg.get('id', '?')}: {e}")


async def async_main(cfg: dict, logger: logging.Logger) -> None:
    loop = asyncio.get_running_loop()

    swarm_cfg    = SwarmConfig.from_dict(cfg)
    notifier_cfg = NotifierConfig.from_dict(cfg)

    async with HttpNotifier(notifier_cfg) as notifier:
        swarm = SwarmCoordinator(swarm_cfg, notifier, settlement=LoggingSettlement())
        await register_configured_agents(swarm, logger)

        stop_event = asyncio.Event()

        def _signal_handler():
            logger.info("Shutdown signal received.")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                signal.signal(sig, lambda s, f: stop_event.set())

        async with swarm:
            stats = swarm.get_statistics()
            logger.info("=" * 56)
            logger.info(f"  Swarm      : {stats['swarm_id']} ({stats['topology']})")
            logger.info(f"  Agents     : {stats['agents']['active']} active")
            logger.info(f"  Timeout    : {swarm_cfg.task_timeout_sec}s "
                        f"(scan every {swarm_cfg.monitor_interval_sec}s)")
            logger.info(f"  Quorum     : {swarm_cfg.consensus_threshold:.0%}")
            logger.info("=" * 56)
            logger.info("Running... (Ctrl+C to stop)")

            await stop_event.wait()

        logger.info(f"Final statistics: {swarm.get_statistics()}")
    logger.info("Hive shut down cleanly.")


def main() -> None:
    cfg = load_yaml(CONFIG_PATH)

    logger = setup_logging(cfg)
    logger.info("=" * 60)
    logger.info("  Hive swarm coordinator — starting up")
    logger.info(f"  Version : {__version__}")
    logger.info("=" * 60)

    asyncio.run(async_main(cfg, logger))


if __name__ == "__main__":
    main()
