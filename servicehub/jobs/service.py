"""
Job service - business logic for the booking lifecycle.

Handles:
- Booking requests (job creation from an active catalog offering)
- Status transitions via the state machine
- Messages, attachments and view tracking via the activity log
- Per-party listings, dashboard statistics and available actions

Every operation loads the job from storage, works on it, and writes it back;
nothing is cached between calls.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from servicehub.config import Settings, get_settings
from servicehub.jobs.activity import ActivityLog
from servicehub.jobs.collaborators import (
    BOOKING_REQUESTED,
    JOB_COMPLETED,
    ActorResolver,
    CatalogLookup,
    JobFact,
    JobPartyResolver,
    StatsSink,
)
from servicehub.jobs.errors import ForbiddenError, JobNotFoundError, JobValidationError
from servicehub.jobs.models import (
    ActorRole,
    Attachment,
    Job,
    JobMessage,
    JobStatus,
    MessageKind,
    Pricing,
    PricingType,
    Scheduling,
    Urgency,
    ViewTracking,
)
from servicehub.jobs.side_effects import TransitionPayload
from servicehub.jobs.state_machine import JobStateMachine, TransitionResult
from servicehub.jobs.storage import JobStorage
from servicehub.jobs.transitions import TransitionOption, available_transitions
from servicehub.types import parse_datetime, utc_now

logger = logging.getLogger(__name__)


@dataclass
class AvailableTransitions:
    """What the caller may do with a job right now."""

    job_id: str
    current_status: JobStatus
    role: ActorRole
    options: List[TransitionOption] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "current_status": self.current_status.value,
            "role": self.role.value,
            "options": [o.to_dict() for o in self.options],
        }


@dataclass
class JobStats:
    """Dashboard numbers for one party."""

    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    total_revenue: float = 0.0
    recent_jobs: List[Job] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_status": dict(self.by_status),
            "total_revenue": self.total_revenue,
            "recent_jobs": [j.id for j in self.recent_jobs],
        }


class JobService:
    """Service for booking lifecycle operations.

    Args:
        storage: Job repository.
        catalog: Read-only access to active offerings.
        stats: Sink for "booking requested" / "job completed" facts.
        resolver: Caller-to-role mapping (defaults to the job's own parties).
        settings: Engine settings (defaults to ``get_settings()``).
        now_fn: Clock returning timezone-aware UTC datetimes.
    """

    def __init__(
        self,
        storage: JobStorage,
        catalog: CatalogLookup,
        stats: StatsSink,
        resolver: Optional[ActorResolver] = None,
        settings: Optional[Settings] = None,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.catalog = catalog
        self.stats = stats
        self.resolver = resolver or JobPartyResolver()
        self.settings = settings or get_settings()
        self._now = now_fn or utc_now
        self.state_machine = JobStateMachine(storage, self.resolver, now_fn=self._now)
        self.activity = ActivityLog(storage, self.resolver, self.settings, now_fn=self._now)

    def _emit(self, kind: str, job: Job) -> None:
        """Send a fact to the stats sink. Failures are logged, never raised."""
        fact = JobFact(
            kind=kind,
            job_id=job.id,
            offering_id=job.service_ref,
            vendor_id=job.vendor_id,
            occurred_at=self._now(),
        )
        try:
            self.stats.emit(fact)
        except Exception as e:
            logger.warning(f"Failed to emit {kind} for job {job.id}: {type(e).__name__}: {e}")

    # =========================================================================
    # Booking
    # =========================================================================

    def create_job(
        self,
        customer_id: str,
        offering_id: str,
        vendor_id: str,
        message: str,
        preferred_date: Union[None, str, datetime] = None,
        urgency: Union[str, Urgency] = Urgency.NORMAL,
        package_name: Optional[str] = None,
    ) -> Job:
        """Create a booking request in ``pending`` status.

        Args:
            customer_id: The customer requesting the booking.
            offering_id: Catalog offering being booked.
            vendor_id: Vendor the customer believes owns the offering.
            message: Customer's request text (also the first activity entry).
            preferred_date: Optional preferred date (ISO string or datetime).
            urgency: normal, urgent or emergency.
            package_name: Optional package of the offering to book.

        Returns:
            The created job.

        Raises:
            JobNotFoundError: Offering doesn't exist or isn't active.
            JobValidationError: Vendor mismatch, unknown package, bad input.
        """
        offering = self.catalog.get_active_offering(offering_id)
        if offering is None:
            raise JobNotFoundError("Service not found or inactive")
        if offering.vendor_id != vendor_id:
            raise JobValidationError("Invalid vendor for this service")
        if customer_id == offering.vendor_id:
            raise JobValidationError("Vendors cannot book their own service")
        if not message or not message.strip():
            raise JobValidationError("Booking message cannot be empty")

        try:
            preferred = parse_datetime(preferred_date)
            urgency = Urgency(urgency)
        except ValueError as e:
            raise JobValidationError(str(e)) from e

        base = offering.pricing
        if package_name:
            package = offering.find_package(package_name)
            if package is None:
                raise JobValidationError("Selected package not found")
            pricing = Pricing(
                type=PricingType.PACKAGE,
                amount=package.price,
                currency=base.currency,
                estimated_total=package.price,
            )
        else:
            pricing = Pricing(
                type=base.type,
                amount=base.amount or 0,
                currency=base.currency,
                estimated_total=base.amount or 0,
            )

        now = self._now()
        try:
            job = Job(
                id=str(uuid.uuid4()),
                customer_id=customer_id,
                vendor_id=offering.vendor_id,
                service_ref=offering.offering_id,
                title=offering.title,
                description=message,
                pricing=pricing,
                status=JobStatus.PENDING,
                scheduling=Scheduling(preferred_date=preferred),
                urgency=urgency,
                requirements=list(offering.requirements),
                deliverables=list(offering.deliverables),
                messages=[
                    JobMessage(
                        sender_id=customer_id,
                        body=message,
                        kind=MessageKind.MESSAGE,
                        timestamp=now,
                    )
                ],
                tracking=ViewTracking(viewed_by_customer=True, last_viewed_by_customer=now),
                created_at=now,
                updated_at=now,
            )
        except ValueError as e:
            raise JobValidationError(str(e)) from e

        self.storage.save_job(job)
        logger.info(f"Created job {job.id} for offering {offering_id} by customer {customer_id}")
        self._emit(BOOKING_REQUESTED, job)
        return job

    # =========================================================================
    # Reads
    # =========================================================================

    def get_job(self, job_id: str) -> Job:
        """Get a job by ID.

        Raises:
            JobNotFoundError: If the job doesn't exist.
        """
        job = self.storage.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def view_job(self, job_id: str, actor_id: str) -> Job:
        """Read a job as one of its parties, marking it viewed."""
        self.activity.mark_viewed(job_id, actor_id)
        return self.get_job(job_id)

    def list_jobs_for(
        self,
        actor_id: str,
        role: Union[str, ActorRole],
        statuses: Optional[Iterable[Union[str, JobStatus]]] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> List[Job]:
        """List a party's jobs, newest first, optionally filtered by status."""
        role = ActorRole(role)
        status_filter = [JobStatus(s) for s in statuses] if statuses is not None else None
        if role == ActorRole.VENDOR:
            return self.storage.list_jobs(
                vendor_id=actor_id, statuses=status_filter, limit=limit, offset=offset
            )
        return self.storage.list_jobs(
            customer_id=actor_id, statuses=status_filter, limit=limit, offset=offset
        )

    def get_job_stats(self, actor_id: str, role: Union[str, ActorRole]) -> JobStats:
        """Counts per status, total and estimated revenue for one party."""
        role = ActorRole(role)
        if role == ActorRole.VENDOR:
            jobs = self.storage.list_jobs(vendor_id=actor_id, limit=1_000_000)
        else:
            jobs = self.storage.list_jobs(customer_id=actor_id, limit=1_000_000)

        stats = JobStats(by_status={s.value: 0 for s in JobStatus})
        for job in jobs:
            stats.total += 1
            stats.by_status[job.status.value] += 1
            stats.total_revenue += job.pricing.estimated_total or 0
        stats.recent_jobs = jobs[: self.settings.recent_jobs_limit]
        return stats

    def get_available_transitions(self, job_id: str, actor_id: str) -> AvailableTransitions:
        """Labelled transitions the caller may request on this job."""
        job = self.get_job(job_id)
        role = self.resolver.resolve_role(job, actor_id)
        if role is None:
            raise ForbiddenError(job_id, actor_id)
        return AvailableTransitions(
            job_id=job.id,
            current_status=job.status,
            role=role,
            options=available_transitions(job.status, role),
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def request_transition(
        self,
        job_id: str,
        actor_id: str,
        status: Union[str, JobStatus],
        reason: Optional[str] = None,
        payload: Union[None, TransitionPayload, Mapping[str, Any]] = None,
    ) -> TransitionResult:
        """Load the job and ask the state machine to move it.

        On ``ConflictError`` nothing was written; re-read the job and decide
        whether the request still makes sense before re-submitting.
        """
        job = self.get_job(job_id)
        result = self.state_machine.request_transition(
            job, status, actor_id, reason=reason, payload=payload
        )
        if result.new_status == JobStatus.COMPLETED:
            self._emit(JOB_COMPLETED, result.job)
        return result

    # =========================================================================
    # Activity
    # =========================================================================

    def post_message(self, job_id: str, actor_id: str, body: str) -> JobMessage:
        return self.activity.post_message(job_id, actor_id, body)

    def add_attachment(
        self,
        job_id: str,
        actor_id: str,
        name: str,
        locator: str,
        content_type: Optional[str] = None,
        size_bytes: Optional[int] = None,
    ) -> Attachment:
        return self.activity.add_attachment(
            job_id, actor_id, name, locator, content_type=content_type, size_bytes=size_bytes
        )

    def mark_viewed(self, job_id: str, actor_id: str) -> ActorRole:
        return self.activity.mark_viewed(job_id, actor_id)
