"""Per-status side effects applied when a job enters a new status.

Each ``JobStatus`` has exactly one handler. Handlers only populate auxiliary
fields (scheduling, deliverables, cancellation); they never change the
status itself. Statuses without consequences map to ``_no_effect`` so the
dispatch table stays exhaustive over the enum.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from servicehub.jobs.errors import JobValidationError
from servicehub.jobs.models import Cancellation, CompletedDeliverable, Job, JobStatus

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "No reason provided"
DEFAULT_DELIVERY_DESCRIPTION = "Delivered"


class TransitionPayload(BaseModel):
    """Optional, transition-specific input.

    Accepts both snake_case and camelCase keys
    (``estimated_completion_date`` / ``estimatedCompletionDate``).
    """

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    estimated_completion_date: Optional[datetime] = None
    delivery_notes: Optional[str] = None

    @field_validator("estimated_completion_date")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("delivery_notes")
    @classmethod
    def blank_notes_are_absent(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


def parse_payload(raw: Union[None, TransitionPayload, Mapping[str, Any]]) -> TransitionPayload:
    """Validate raw payload input.

    Raises:
        JobValidationError: If the payload is malformed.
    """
    if raw is None:
        return TransitionPayload()
    if isinstance(raw, TransitionPayload):
        return raw
    if not isinstance(raw, Mapping):
        raise JobValidationError(f"Transition payload must be a mapping, got {type(raw).__name__}")
    try:
        return TransitionPayload.model_validate(dict(raw))
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise JobValidationError(f"Invalid transition payload: {problems}") from e


@dataclass(frozen=True)
class SideEffectContext:
    """Everything a handler may read besides the job itself."""

    actor_id: str
    reason: Optional[str]
    payload: TransitionPayload
    now: datetime


Handler = Callable[[Job, SideEffectContext], None]


def _no_effect(job: Job, ctx: SideEffectContext) -> None:
    return None


def _enter_in_progress(job: Job, ctx: SideEffectContext) -> None:
    job.scheduling.confirmed_date = ctx.now
    if ctx.payload.estimated_completion_date is not None:
        job.scheduling.estimated_end_time = ctx.payload.estimated_completion_date


def _enter_completed(job: Job, ctx: SideEffectContext) -> None:
    duration = job.scheduling.duration
    confirmed = job.scheduling.confirmed_date
    if duration.actual is None and confirmed is not None:
        elapsed_hours = (ctx.now - confirmed).total_seconds() / 3600
        duration.actual = max(0, math.ceil(elapsed_hours))
    elif duration.actual is None:
        logger.warning(f"Job {job.id} completed without a confirmed date; actual duration unset")
    if ctx.payload.delivery_notes:
        job.deliverables.append(ctx.payload.delivery_notes)


def _enter_delivered(job: Job, ctx: SideEffectContext) -> None:
    # Not idempotent: a second delivery would snapshot again. The transition
    # table only reaches delivered from completed, once.
    description = ctx.payload.delivery_notes or DEFAULT_DELIVERY_DESCRIPTION
    job.completed_deliverables.extend(
        CompletedDeliverable(name=name, description=description, completed_at=ctx.now)
        for name in job.deliverables
    )


def _enter_cancelled(job: Job, ctx: SideEffectContext) -> None:
    reason = ctx.reason if ctx.reason and ctx.reason.strip() else DEFAULT_CANCEL_REASON
    job.cancellation = Cancellation(cancelled_by=ctx.actor_id, reason=reason, cancelled_at=ctx.now)


SIDE_EFFECTS: Mapping[JobStatus, Handler] = MappingProxyType(
    {
        JobStatus.PENDING: _no_effect,
        JobStatus.REVIEWING: _no_effect,
        JobStatus.QUOTED: _no_effect,
        JobStatus.ACCEPTED: _no_effect,
        JobStatus.CONFIRMED: _no_effect,
        JobStatus.IN_PROGRESS: _enter_in_progress,
        JobStatus.COMPLETED: _enter_completed,
        JobStatus.DELIVERED: _enter_delivered,
        JobStatus.CANCELLED: _enter_cancelled,
        JobStatus.REJECTED: _no_effect,
        JobStatus.DISPUTED: _no_effect,
        JobStatus.CLOSED: _no_effect,
    }
)

_missing = set(JobStatus) - set(SIDE_EFFECTS)
if _missing:
    raise RuntimeError(f"No side-effect handler for: {sorted(s.value for s in _missing)}")


def apply_side_effects(job: Job, target: JobStatus, ctx: SideEffectContext) -> None:
    """Run the handler for ``target`` against ``job`` in place."""
    SIDE_EFFECTS[target](job, ctx)
