"""Job state machine: validates and applies status transitions.

A transition request goes through, in order:

1. Role resolution (Forbidden if the caller is not a party to the job).
2. Table lookup for (current status, role) (InvalidTransition otherwise).
3. Side effects for the target status, on a private copy of the job.
4. Status change, history entry, summary message.
5. Versioned save (Conflict if someone else saved first).

Nothing is persisted unless every step succeeds, and the caller's job object
is never mutated. The machine does not retry a conflicted transition: the
status may have moved on, so re-submitting is the caller's decision.
"""

import copy
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Union

from servicehub.jobs.collaborators import ActorResolver, JobPartyResolver
from servicehub.jobs.errors import ConflictError, ForbiddenError, InvalidTransitionError
from servicehub.jobs.models import (
    ActorRole,
    Job,
    JobMessage,
    JobStatus,
    MessageKind,
    StatusHistoryEntry,
)
from servicehub.jobs.side_effects import (
    SideEffectContext,
    TransitionPayload,
    apply_side_effects,
    parse_payload,
)
from servicehub.jobs.storage import JobStorage
from servicehub.jobs.transitions import allowed
from servicehub.logging_config import log_transition
from servicehub.types import VersionConflictError, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of an accepted transition."""

    job: Job
    previous_status: JobStatus
    role: ActorRole

    @property
    def new_status(self) -> JobStatus:
        return self.job.status


def status_change_message(previous: JobStatus, new: JobStatus, reason: Optional[str]) -> str:
    """Summary text written to the activity log for a transition."""
    text = f"Job status changed from {previous.value} to {new.value}"
    if reason:
        text += f". Reason: {reason}"
    return text


class JobStateMachine:
    """Validates transition requests and persists accepted ones.

    Args:
        storage: Job repository with versioned ``update_job``.
        resolver: Maps a caller to their role on a job.
        now_fn: Clock returning timezone-aware UTC datetimes.
    """

    def __init__(
        self,
        storage: JobStorage,
        resolver: Optional[ActorResolver] = None,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.resolver = resolver or JobPartyResolver()
        self._now = now_fn or utc_now

    def resolve_role(self, job: Job, actor_id: str) -> ActorRole:
        """Return the caller's role or raise ForbiddenError."""
        role = self.resolver.resolve_role(job, actor_id)
        if role is None:
            raise ForbiddenError(job.id, actor_id)
        return role

    def request_transition(
        self,
        job: Job,
        requested_status: Union[JobStatus, str],
        actor_id: str,
        reason: Optional[str] = None,
        payload: Union[None, TransitionPayload, Mapping[str, Any]] = None,
    ) -> TransitionResult:
        """Move ``job`` to ``requested_status`` on behalf of ``actor_id``.

        Returns:
            TransitionResult with the persisted job and the previous status.

        Raises:
            ForbiddenError: Caller is neither customer nor vendor.
            InvalidTransitionError: Target not permitted for (status, role).
            JobValidationError: Malformed payload.
            ConflictError: The job was modified since it was loaded.
        """
        role = self.resolve_role(job, actor_id)

        try:
            target = JobStatus(requested_status)
        except ValueError:
            raise InvalidTransitionError(
                job.status.value, str(requested_status), role.value
            ) from None

        if target not in allowed(job.status, role):
            raise InvalidTransitionError(job.status.value, target.value, role.value)

        ctx = SideEffectContext(
            actor_id=actor_id,
            reason=reason,
            payload=parse_payload(payload),
            now=self._now(),
        )

        working = copy.deepcopy(job)
        previous = working.status

        apply_side_effects(working, target, ctx)
        working.status = target
        working.status_history.append(
            StatusHistoryEntry(status=target, timestamp=ctx.now, changed_by=actor_id, reason=reason)
        )
        summary = JobMessage(
            sender_id=actor_id,
            body=status_change_message(previous, target, reason),
            kind=MessageKind.STATUS_UPDATE,
            timestamp=ctx.now,
        )
        working.messages.append(summary)
        working.updated_at = ctx.now

        try:
            self.storage.update_job(
                working, expected_version=job.version, appended_messages=[summary]
            )
        except VersionConflictError as e:
            logger.info(f"Conflict on job {job.id}: {previous.value} -> {target.value} by {actor_id}")
            raise ConflictError(job.id, e.expected_version, e.actual_version) from e

        logger.info(f"Job {job.id}: {previous.value} -> {target.value} by {role.value} {actor_id}")
        log_transition(job.id, previous.value, target.value, actor_id, role.value, reason)

        return TransitionResult(job=working, previous_status=previous, role=role)
