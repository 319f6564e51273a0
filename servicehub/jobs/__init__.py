"""Job lifecycle subsystem for servicehub.

Models:
- Job: A booking between a customer and a vendor
- JobStatus: Job lifecycle status
- ActorRole: Caller's role on a job (customer or vendor)
- JobMessage / Attachment / StatusHistoryEntry: Append-only records

Engine:
- VALID_JOB_TRANSITIONS: Who may move a job where
- JobStateMachine: Validates and persists transitions
- ActivityLog: Messages, attachments, view tracking

Service:
- JobService: Booking, transitions, listings, stats
"""

from servicehub.jobs.activity import ActivityLog
from servicehub.jobs.collaborators import (
    HttpStatsSink,
    InMemoryCatalog,
    InMemoryStatsSink,
    JobPartyResolver,
    Offering,
    ServicePackage,
    stats_sink_from_settings,
)
from servicehub.jobs.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    JobNotFoundError,
    JobServiceError,
    JobValidationError,
)
from servicehub.jobs.models import (
    ActorRole,
    Attachment,
    Job,
    JobMessage,
    JobStatus,
    MessageKind,
    Pricing,
    PricingType,
    StatusHistoryEntry,
    Urgency,
)
from servicehub.jobs.service import AvailableTransitions, JobService, JobStats
from servicehub.jobs.sqlite_storage import SQLiteJobStorage
from servicehub.jobs.state_machine import JobStateMachine, TransitionResult
from servicehub.jobs.storage import InMemoryJobStorage, JobStorage
from servicehub.jobs.transitions import (
    TERMINAL_STATUSES,
    VALID_JOB_TRANSITIONS,
    available_transitions,
)

__all__ = [
    # Models
    "Job",
    "JobStatus",
    "ActorRole",
    "MessageKind",
    "Urgency",
    "Pricing",
    "PricingType",
    "JobMessage",
    "Attachment",
    "StatusHistoryEntry",
    # Transitions
    "VALID_JOB_TRANSITIONS",
    "TERMINAL_STATUSES",
    "available_transitions",
    "JobStateMachine",
    "TransitionResult",
    "ActivityLog",
    # Storage
    "JobStorage",
    "InMemoryJobStorage",
    "SQLiteJobStorage",
    # Collaborators
    "JobPartyResolver",
    "InMemoryCatalog",
    "Offering",
    "ServicePackage",
    "InMemoryStatsSink",
    "HttpStatsSink",
    "stats_sink_from_settings",
    # Service
    "JobService",
    "AvailableTransitions",
    "JobStats",
    "JobServiceError",
    "JobNotFoundError",
    "ForbiddenError",
    "InvalidTransitionError",
    "ConflictError",
    "JobValidationError",
]
