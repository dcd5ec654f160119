"""Hive — swarm coordination engine.

Registers worker agents, schedules tasks onto them, recovers timed-out
work and runs quorum votes across the active swarm.
"""

__version__ = "0.3.0"
