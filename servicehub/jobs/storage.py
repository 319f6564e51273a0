"""
Jobs storage layer.

Two kinds of writes reach a stored job:

- ``update_job``: versioned compare-and-swap used by the state machine.
  Writes the lifecycle fields and appends the transition's summary message.
- ``append_message`` / ``append_attachment`` / ``update_view_tracking``:
  field-level writes that never bump the version, so they neither conflict
  with a transition nor get overwritten by one.
"""

import copy
import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from servicehub.jobs.models import ActorRole, Attachment, Job, JobMessage, JobStatus
from servicehub.types import VersionConflictError, utc_now

logger = logging.getLogger(__name__)


class JobStorage(Protocol):
    """Protocol for job persistence backends."""

    def save_job(self, job: Job) -> str:
        """Create a job. Returns the job ID."""
        ...

    def get_job(self, job_id: str) -> Optional[Job]:
        """Load a job by ID (a private copy the caller may mutate)."""
        ...

    def list_jobs(
        self,
        customer_id: Optional[str] = None,
        vendor_id: Optional[str] = None,
        statuses: Optional[Iterable[JobStatus]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        """List jobs, newest first."""
        ...

    def update_job(
        self,
        job: Job,
        expected_version: int,
        appended_messages: Sequence[JobMessage] = (),
    ) -> int:
        """Persist lifecycle fields if the stored version matches.

        Returns the new version.

        Raises:
            VersionConflictError: If the stored version differs (or the job is gone).
        """
        ...

    def append_message(self, job_id: str, message: JobMessage) -> bool:
        """Append to the activity log. Returns False if the job doesn't exist."""
        ...

    def append_attachment(self, job_id: str, attachment: Attachment) -> bool:
        """Append an attachment record. Returns False if the job doesn't exist."""
        ...

    def update_view_tracking(self, job_id: str, role: ActorRole, viewed_at: datetime) -> bool:
        """Set the viewed flag for ``role``. Returns False if the job doesn't exist."""
        ...


class InMemoryJobStorage:
    """In-memory job storage for testing and local development.

    Jobs are copied on the way in and out, so callers never share state with
    the store. A lock per job makes each write atomic.
    """

    def __init__(self):
        """Initialize empty storage."""
        self._jobs: Dict[str, Job] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, job_id: str) -> Optional[threading.Lock]:
        with self._registry_lock:
            return self._locks.get(job_id)

    # === Jobs ===

    def save_job(self, job: Job) -> str:
        """Create a job."""
        if job.created_at is None:
            job.created_at = utc_now()
        job.updated_at = job.created_at
        with self._registry_lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")
            self._jobs[job.id] = copy.deepcopy(job)
            self._locks[job.id] = threading.Lock()
        return job.id

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        lock = self._lock_for(job_id)
        if lock is None:
            return None
        with lock:
            return copy.deepcopy(self._jobs[job_id])

    def list_jobs(
        self,
        customer_id: Optional[str] = None,
        vendor_id: Optional[str] = None,
        statuses: Optional[Iterable[JobStatus]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        """List jobs with optional filters."""
        with self._registry_lock:
            jobs = [copy.deepcopy(j) for j in self._jobs.values()]

        if customer_id is not None:
            jobs = [j for j in jobs if j.customer_id == customer_id]
        if vendor_id is not None:
            jobs = [j for j in jobs if j.vendor_id == vendor_id]
        if statuses is not None:
            wanted = {JobStatus(s) for s in statuses}
            jobs = [j for j in jobs if j.status in wanted]

        # Sort by created_at desc
        jobs.sort(key=lambda j: j.created_at or utc_now(), reverse=True)

        return jobs[offset : offset + limit]

    def update_job(
        self,
        job: Job,
        expected_version: int,
        appended_messages: Sequence[JobMessage] = (),
    ) -> int:
        """Compare-and-swap the lifecycle fields of a job."""
        lock = self._lock_for(job.id)
        if lock is None:
            raise VersionConflictError("jobs", job.id, expected_version, -1)
        with lock:
            stored = self._jobs[job.id]
            if stored.version != expected_version:
                raise VersionConflictError("jobs", job.id, expected_version, stored.version)

            stored.status = job.status
            stored.pricing = copy.deepcopy(job.pricing)
            stored.scheduling = copy.deepcopy(job.scheduling)
            stored.deliverables = list(job.deliverables)
            stored.completed_deliverables = copy.deepcopy(job.completed_deliverables)
            stored.status_history = copy.deepcopy(job.status_history)
            stored.cancellation = copy.deepcopy(job.cancellation)
            stored.messages.extend(copy.deepcopy(list(appended_messages)))
            stored.updated_at = job.updated_at or utc_now()
            stored.version = expected_version + 1

        job.version = expected_version + 1
        return job.version

    # === Field-level appends ===

    def append_message(self, job_id: str, message: JobMessage) -> bool:
        """Append a message to the activity log."""
        lock = self._lock_for(job_id)
        if lock is None:
            return False
        with lock:
            self._jobs[job_id].messages.append(copy.deepcopy(message))
        return True

    def append_attachment(self, job_id: str, attachment: Attachment) -> bool:
        """Append an attachment record."""
        lock = self._lock_for(job_id)
        if lock is None:
            return False
        with lock:
            self._jobs[job_id].attachments.append(copy.deepcopy(attachment))
        return True

    def update_view_tracking(self, job_id: str, role: ActorRole, viewed_at: datetime) -> bool:
        """Mark the job as viewed by ``role``."""
        lock = self._lock_for(job_id)
        if lock is None:
            return False
        with lock:
            tracking = self._jobs[job_id].tracking
            if ActorRole(role) == ActorRole.VENDOR:
                tracking.viewed_by_vendor = True
                tracking.last_viewed_by_vendor = viewed_at
            else:
                tracking.viewed_by_customer = True
                tracking.last_viewed_by_customer = viewed_at
        return True
