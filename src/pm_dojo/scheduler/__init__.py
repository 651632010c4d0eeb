"""
Scheduler module for the daily sync job.

Schedules:
- Daily: incremental sync of new episodes, then question assembly for them
"""

from src.pm_dojo.scheduler.scheduler import DojoScheduler

__all__ = ["DojoScheduler"]
