"""Job transition table: who may move a job to which status.

The table is keyed by (current status, actor role) and is built once at
import as a read-only mapping. Every status has a row for both roles; a row
with no targets means that party cannot move the job from there.

Terminal statuses (no targets for either role): cancelled, rejected, closed.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Mapping

from servicehub.jobs.models import ActorRole, JobStatus

_S = JobStatus
_V = ActorRole.VENDOR
_C = ActorRole.CUSTOMER

INITIAL_STATUS = JobStatus.PENDING

_TABLE = {
    _S.PENDING: {_V: {_S.REVIEWING, _S.ACCEPTED, _S.REJECTED}, _C: {_S.CANCELLED}},
    _S.REVIEWING: {_V: {_S.QUOTED, _S.ACCEPTED, _S.REJECTED}, _C: {_S.CANCELLED}},
    _S.QUOTED: {_V: {_S.ACCEPTED, _S.REJECTED}, _C: {_S.CONFIRMED, _S.CANCELLED}},
    _S.ACCEPTED: {_V: set(), _C: {_S.CONFIRMED, _S.CANCELLED}},
    _S.CONFIRMED: {_V: {_S.IN_PROGRESS}, _C: {_S.CANCELLED}},
    _S.IN_PROGRESS: {_V: {_S.COMPLETED}, _C: set()},
    _S.COMPLETED: {_V: set(), _C: {_S.DELIVERED, _S.DISPUTED}},
    _S.DELIVERED: {_V: set(), _C: {_S.CLOSED}},
    _S.DISPUTED: {_V: {_S.CLOSED}, _C: {_S.CLOSED}},
    # Terminal states, no outgoing transitions
    _S.CANCELLED: {_V: set(), _C: set()},
    _S.REJECTED: {_V: set(), _C: set()},
    _S.CLOSED: {_V: set(), _C: set()},
}

VALID_JOB_TRANSITIONS: Mapping[JobStatus, Mapping[ActorRole, frozenset]] = MappingProxyType(
    {
        status: MappingProxyType({role: frozenset(targets) for role, targets in row.items()})
        for status, row in _TABLE.items()
    }
)

if set(VALID_JOB_TRANSITIONS) != set(JobStatus) or any(
    set(row) != set(ActorRole) for row in VALID_JOB_TRANSITIONS.values()
):
    raise RuntimeError("Transition table must cover every (status, role) pair")

TERMINAL_STATUSES = frozenset(
    status
    for status, row in VALID_JOB_TRANSITIONS.items()
    if not any(row[role] for role in ActorRole)
)


def allowed(status: JobStatus, role: ActorRole) -> frozenset:
    """Return the statuses ``role`` may move a job to from ``status``."""
    return VALID_JOB_TRANSITIONS[JobStatus(status)][ActorRole(role)]


def is_terminal(status: JobStatus) -> bool:
    """Check if a status has no outgoing transitions for either role."""
    return JobStatus(status) in TERMINAL_STATUSES


@dataclass(frozen=True)
class TransitionOption:
    """A permitted transition, labelled for display."""

    status: JobStatus
    label: str
    description: str

    def to_dict(self) -> dict:
        return {"status": self.status.value, "label": self.label, "description": self.description}


# (status, role, target) -> (label, description)
_LABELS = {
    (_S.PENDING, _V, _S.REVIEWING): ("Review Request", "Start reviewing the booking request"),
    (_S.PENDING, _V, _S.ACCEPTED): ("Accept Job", "Accept the job request directly"),
    (_S.PENDING, _V, _S.REJECTED): ("Decline Request", "Decline the booking request"),
    (_S.PENDING, _C, _S.CANCELLED): ("Cancel Request", "Cancel the job request"),
    (_S.REVIEWING, _V, _S.QUOTED): ("Send Quote", "Provide a quote for the work"),
    (_S.REVIEWING, _V, _S.ACCEPTED): ("Accept Job", "Accept the job without a quote"),
    (_S.REVIEWING, _V, _S.REJECTED): ("Decline Request", "Decline the booking request"),
    (_S.REVIEWING, _C, _S.CANCELLED): ("Cancel Request", "Cancel the job request"),
    (_S.QUOTED, _V, _S.ACCEPTED): ("Accept Job", "Accept the job at the quoted price"),
    (_S.QUOTED, _V, _S.REJECTED): ("Withdraw Quote", "Withdraw the quote and decline the job"),
    (_S.QUOTED, _C, _S.CONFIRMED): ("Accept Quote", "Accept the quote and confirm the booking"),
    (_S.QUOTED, _C, _S.CANCELLED): ("Cancel Request", "Cancel the job request"),
    (_S.ACCEPTED, _C, _S.CONFIRMED): ("Confirm Booking", "Confirm the booking with the vendor"),
    (_S.ACCEPTED, _C, _S.CANCELLED): ("Cancel Job", "Cancel the job"),
    (_S.CONFIRMED, _V, _S.IN_PROGRESS): ("Start Work", "Mark the work as started"),
    (_S.CONFIRMED, _C, _S.CANCELLED): ("Cancel Job", "Cancel the job"),
    (_S.IN_PROGRESS, _V, _S.COMPLETED): ("Mark Complete", "Mark the work as completed"),
    (_S.COMPLETED, _C, _S.DELIVERED): ("Confirm Work Done", "Accept the delivered work"),
    (_S.COMPLETED, _C, _S.DISPUTED): ("Report Issue", "Dispute the completed work"),
    (_S.DELIVERED, _C, _S.CLOSED): ("Close Job", "Close the job"),
    (_S.DISPUTED, _V, _S.CLOSED): ("Close Dispute", "Close the job after resolving the dispute"),
    (_S.DISPUTED, _C, _S.CLOSED): ("Close Dispute", "Close the job after resolving the dispute"),
}

_EDGES = {
    (status, role, target)
    for status, row in VALID_JOB_TRANSITIONS.items()
    for role, targets in row.items()
    for target in targets
}
if _EDGES != set(_LABELS):
    raise RuntimeError("Every permitted transition needs exactly one label")


def available_transitions(status: JobStatus, role: ActorRole) -> List[TransitionOption]:
    """Return labelled options for every transition ``role`` may request."""
    status, role = JobStatus(status), ActorRole(role)
    options = [
        TransitionOption(target, *_LABELS[(status, role, target)])
        for target in allowed(status, role)
    ]
    return sorted(options, key=lambda o: list(JobStatus).index(o.status))
