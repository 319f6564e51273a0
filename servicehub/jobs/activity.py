"""
Activity log for jobs: free-text messages, attachments, and view tracking.

These are direct appends by either party. They don't go through the
transition table and don't bump the job version, so they can run alongside
a transition on the same job without either write being lost.
"""

import logging
from datetime import datetime
from pathlib import PurePosixPath
from typing import Callable, List, Optional

from servicehub.config import Settings, get_settings
from servicehub.jobs.collaborators import ActorResolver, JobPartyResolver
from servicehub.jobs.errors import ForbiddenError, JobNotFoundError, JobValidationError
from servicehub.jobs.models import (
    ActorRole,
    Attachment,
    Job,
    JobMessage,
    MessageKind,
    StatusHistoryEntry,
)
from servicehub.jobs.storage import JobStorage
from servicehub.logging_config import log_message, log_view
from servicehub.types import utc_now

logger = logging.getLogger(__name__)


class ActivityLog:
    """Append-only messaging and bookkeeping for a job's two parties."""

    def __init__(
        self,
        storage: JobStorage,
        resolver: Optional[ActorResolver] = None,
        settings: Optional[Settings] = None,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.resolver = resolver or JobPartyResolver()
        self.settings = settings or get_settings()
        self._now = now_fn or utc_now

    def _load_for(self, job_id: str, actor_id: str) -> tuple[Job, ActorRole]:
        job = self.storage.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        role = self.resolver.resolve_role(job, actor_id)
        if role is None:
            raise ForbiddenError(job_id, actor_id)
        return job, role

    def post_message(self, job_id: str, actor_id: str, body: str) -> JobMessage:
        """Append a ``message``-kind entry written by one of the parties.

        Raises:
            JobNotFoundError: The job doesn't exist.
            ForbiddenError: Caller is neither customer nor vendor.
            JobValidationError: Empty or over-long body.
        """
        self._load_for(job_id, actor_id)

        if not isinstance(body, str) or not body.strip():
            raise JobValidationError("Message cannot be empty")
        limit = self.settings.max_message_length
        if len(body) > limit:
            raise JobValidationError(f"Message too long (max {limit} characters, got {len(body)})")

        message = JobMessage(
            sender_id=actor_id,
            body=body,
            kind=MessageKind.MESSAGE,
            timestamp=self._now(),
        )
        if not self.storage.append_message(job_id, message):
            raise JobNotFoundError(f"Job {job_id} not found")

        log_message(job_id, actor_id, message.kind.value, len(body))
        return message

    def add_attachment(
        self,
        job_id: str,
        actor_id: str,
        name: str,
        locator: str,
        content_type: Optional[str] = None,
        size_bytes: Optional[int] = None,
    ) -> Attachment:
        """Record a file that one of the parties uploaded elsewhere.

        Only the file types and sizes allowed by settings are accepted.
        """
        self._load_for(job_id, actor_id)

        extension = PurePosixPath(name or "").suffix.lower().lstrip(".")
        allowed = {e.lower().lstrip(".") for e in self.settings.allowed_attachment_extensions}
        if extension not in allowed:
            raise JobValidationError("Only images and documents are allowed")
        if size_bytes is not None:
            if size_bytes < 0:
                raise JobValidationError("size_bytes cannot be negative")
            if size_bytes > self.settings.max_attachment_bytes:
                raise JobValidationError(
                    f"File too large (max {self.settings.max_attachment_bytes} bytes)"
                )

        try:
            attachment = Attachment(
                name=name,
                locator=locator,
                uploader_id=actor_id,
                uploaded_at=self._now(),
                content_type=content_type,
                size_bytes=size_bytes,
            )
        except ValueError as e:
            raise JobValidationError(str(e)) from e

        if not self.storage.append_attachment(job_id, attachment):
            raise JobNotFoundError(f"Job {job_id} not found")
        logger.info(f"Attachment {name!r} added to job {job_id} by {actor_id}")
        return attachment

    def mark_viewed(self, job_id: str, actor_id: str) -> ActorRole:
        """Set the caller's viewed flag and stamp the time. Safe to repeat."""
        _, role = self._load_for(job_id, actor_id)
        if not self.storage.update_view_tracking(job_id, role, self._now()):
            raise JobNotFoundError(f"Job {job_id} not found")
        log_view(job_id, actor_id, role.value)
        return role

    def entries(self, job_id: str, actor_id: str) -> List[JobMessage]:
        """All activity entries in append order."""
        job, _ = self._load_for(job_id, actor_id)
        return list(job.messages)

    def history(self, job_id: str, actor_id: str) -> List[StatusHistoryEntry]:
        """Accepted transitions in the order they happened."""
        job, _ = self._load_for(job_id, actor_id)
        return list(job.status_history)
