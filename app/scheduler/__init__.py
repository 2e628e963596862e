"""Scheduling of periodic matching runs."""

from .service import SchedulerService

__all__ = [
    "SchedulerService",
]
