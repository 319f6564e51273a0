"""
servicehub - Booking lifecycle engine for a services marketplace.

Customers request jobs from vendors; the engine decides who may move a job
to which status and records everything that happens along the way.
"""

from .jobs import JobService, JobStateMachine

try:
    from importlib.metadata import version

    __version__ = version("servicehub")
except Exception:
    __version__ = "0.0.0"

__all__ = ["JobService", "JobStateMachine"]
