"""
Narrow interfaces to the parts of the marketplace the engine doesn't own.

- ActorResolver: who is the caller with respect to a job?
- CatalogLookup: read-only access to active offerings, used at booking time.
- StatsSink: fire-and-forget facts for the analytics side (booking
  requested, job completed). The engine never updates counters itself.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import httpx

from servicehub.config import Settings, get_settings
from servicehub.jobs.models import ActorRole, Job, Pricing
from servicehub.types import to_iso

logger = logging.getLogger(__name__)


# =============================================================================
# Actor resolution
# =============================================================================


class ActorResolver(Protocol):
    def resolve_role(self, job: Job, actor_id: str) -> Optional[ActorRole]:
        """Return the caller's role on ``job``, or None if they are not a party."""
        ...


class JobPartyResolver:
    """Resolve roles from the job's own customer/vendor references.

    An account that is both customer and vendor of the same job (self-booking)
    resolves to no role at all.
    """

    def resolve_role(self, job: Job, actor_id: str) -> Optional[ActorRole]:
        if not actor_id:
            return None
        is_customer = actor_id == job.customer_id
        is_vendor = actor_id == job.vendor_id
        if is_customer and is_vendor:
            logger.warning(f"Actor {actor_id} is both customer and vendor of job {job.id}")
            return None
        if is_vendor:
            return ActorRole.VENDOR
        if is_customer:
            return ActorRole.CUSTOMER
        return None


# =============================================================================
# Catalog
# =============================================================================


@dataclass
class ServicePackage:
    name: str
    price: float
    description: str = ""
    delivery_days: Optional[int] = None


@dataclass
class Offering:
    """The catalog fields the booking flow needs."""

    offering_id: str
    vendor_id: str
    title: str
    pricing: Pricing
    packages: List[ServicePackage] = field(default_factory=list)
    requirements: List[str] = field(default_factory=list)
    deliverables: List[str] = field(default_factory=list)
    is_active: bool = True

    def find_package(self, name: str) -> Optional[ServicePackage]:
        return next((p for p in self.packages if p.name == name), None)


class CatalogLookup(Protocol):
    def get_active_offering(self, offering_id: str) -> Optional[Offering]:
        """Return the offering if it exists and is active."""
        ...


class InMemoryCatalog:
    """Dictionary-backed catalog for tests and local development."""

    def __init__(self, offerings: Optional[List[Offering]] = None):
        self._offerings: Dict[str, Offering] = {o.offering_id: o for o in offerings or []}

    def add(self, offering: Offering) -> None:
        self._offerings[offering.offering_id] = offering

    def get_active_offering(self, offering_id: str) -> Optional[Offering]:
        offering = self._offerings.get(offering_id)
        if offering is None or not offering.is_active:
            return None
        return offering


# =============================================================================
# Statistics
# =============================================================================

BOOKING_REQUESTED = "booking_requested"
JOB_COMPLETED = "job_completed"


@dataclass(frozen=True)
class JobFact:
    """Something that happened to a job, for counters elsewhere."""

    kind: str
    job_id: str
    offering_id: str
    vendor_id: str
    occurred_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "job_id": self.job_id,
            "offering_id": self.offering_id,
            "vendor_id": self.vendor_id,
            "occurred_at": to_iso(self.occurred_at),
        }


class StatsSink(Protocol):
    def emit(self, fact: JobFact) -> None:
        ...


class InMemoryStatsSink:
    """Collects facts in a list."""

    def __init__(self):
        self.facts: List[JobFact] = []

    def emit(self, fact: JobFact) -> None:
        self.facts.append(fact)

    def count(self, kind: str, offering_id: Optional[str] = None) -> int:
        return sum(
            1
            for f in self.facts
            if f.kind == kind and (offering_id is None or f.offering_id == offering_id)
        )


class HttpStatsSink:
    """Posts facts as JSON to the analytics service.

    Args:
        endpoint: URL that accepts ``POST`` of a single fact.
        timeout: Seconds before the request is abandoned.
        client: Optional pre-built ``httpx.Client`` (tests inject a mock
            transport through this).
    """

    def __init__(self, endpoint: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.endpoint = endpoint
        self._client = client or httpx.Client(timeout=timeout)

    def emit(self, fact: JobFact) -> None:
        response = self._client.post(
            self.endpoint,
            json=fact.to_dict(),
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()
        logger.debug(f"Emitted {fact.kind} for job {fact.job_id}")

    def close(self) -> None:
        self._client.close()


def stats_sink_from_settings(settings: Optional[Settings] = None) -> StatsSink:
    """Build the configured sink: HTTP when ``stats_endpoint`` is set, else in-memory."""
    settings = settings or get_settings()
    if settings.stats_endpoint:
        return HttpStatsSink(settings.stats_endpoint, timeout=settings.stats_timeout_seconds)
    logger.debug("No stats endpoint configured; collecting facts in memory")
    return InMemoryStatsSink()
