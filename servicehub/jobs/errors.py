"""
Job service errors.

Every failure the engine reports is one of the exceptions below. Each has a
stable ``kind`` so a transport layer can map it 1:1 onto a status code
(see ``ERROR_STATUS_CODES``).
"""

from typing import Optional


class JobServiceError(Exception):
    """Base exception for job service errors."""

    kind = "error"
    retryable = False


class JobNotFoundError(JobServiceError):
    """Referenced job (or catalog offering) does not exist."""

    kind = "not_found"


class ForbiddenError(JobServiceError):
    """Actor is neither the customer nor the vendor of the job."""

    kind = "forbidden"

    def __init__(self, job_id: str, actor_id: str):
        self.job_id = job_id
        self.actor_id = actor_id
        super().__init__(f"Actor {actor_id} is not the customer or vendor of job {job_id}")


class InvalidTransitionError(JobServiceError):
    """Requested status is not permitted for (current status, role)."""

    kind = "invalid_transition"

    def __init__(self, current: str, requested: str, role: Optional[str]):
        self.current = current
        self.requested = requested
        self.role = role
        super().__init__(f"As a {role}, you cannot change status from {current} to {requested}")


class ConflictError(JobServiceError):
    """The job changed between load and save. Re-read, re-validate, re-submit."""

    kind = "conflict"
    retryable = True

    def __init__(self, job_id: str, expected_version: int, actual_version: int):
        self.job_id = job_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Job {job_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )


class JobValidationError(JobServiceError):
    """Malformed input, e.g. an unparseable date in a transition payload."""

    kind = "validation_error"


ERROR_STATUS_CODES = {
    JobNotFoundError.kind: 404,
    ForbiddenError.kind: 403,
    InvalidTransitionError.kind: 409,
    ConflictError.kind: 409,
    JobValidationError.kind: 422,
}
