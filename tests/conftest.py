"""
Pytest fixtures and test configuration for servicehub tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from servicehub.config import get_settings
from servicehub.jobs.collaborators import (
    InMemoryCatalog,
    InMemoryStatsSink,
    Offering,
    ServicePackage,
)
from servicehub.jobs.models import Cancellation, Job, JobStatus, Pricing, PricingType
from servicehub.jobs.service import JobService
from servicehub.jobs.storage import InMemoryJobStorage

CUSTOMER = "customer-1"
VENDOR = "vendor-1"
OFFERING = "svc-logo"


class FakeClock:
    """Deterministic ``now_fn`` that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    """Point settings and logs at a temp directory for every test."""
    monkeypatch.setenv("SERVICEHUB_DATA_DIR", str(tmp_path))
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return InMemoryJobStorage()


@pytest.fixture
def offering():
    return Offering(
        offering_id=OFFERING,
        vendor_id=VENDOR,
        title="Logo design",
        pricing=Pricing(type=PricingType.FIXED, amount=150.0),
        packages=[
            ServicePackage(name="Basic", price=100.0, description="One concept"),
            ServicePackage(name="Premium", price=250.0, description="Three concepts"),
        ],
        requirements=["Company name", "Color preferences"],
        deliverables=["Logo files", "Brand guide"],
    )


@pytest.fixture
def catalog(offering):
    return InMemoryCatalog([offering])


@pytest.fixture
def stats():
    return InMemoryStatsSink()


@pytest.fixture
def service(storage, catalog, stats, clock):
    return JobService(storage, catalog, stats, now_fn=clock)


@pytest.fixture
def pending_job(service):
    """A freshly booked job in ``pending``."""
    return service.create_job(
        customer_id=CUSTOMER,
        offering_id=OFFERING,
        vendor_id=VENDOR,
        message="Need a logo for my bakery",
    )


@pytest.fixture
def drive(service):
    """Return a helper that applies (actor, status) steps to a job."""

    def _drive(job_id, steps):
        result = None
        for actor, status in steps:
            result = service.request_transition(job_id, actor, status)
        return result.job if result else service.get_job(job_id)

    return _drive


@pytest.fixture
def make_job(clock):
    """Build a Job directly in any status, without going through the service."""

    def _make(job_id="job-1", status=JobStatus.PENDING, **overrides):
        status = JobStatus(status)
        cancellation = None
        if status == JobStatus.CANCELLED:
            cancellation = Cancellation(
                cancelled_by=CUSTOMER, reason="Changed plans", cancelled_at=clock()
            )
        fields = dict(
            id=job_id,
            customer_id=CUSTOMER,
            vendor_id=VENDOR,
            service_ref=OFFERING,
            title="Logo design",
            description="Need a logo",
            pricing=Pricing(type=PricingType.FIXED, amount=150.0, estimated_total=150.0),
            status=status,
            deliverables=["Logo files", "Brand guide"],
            cancellation=cancellation,
            created_at=clock(),
            updated_at=clock(),
        )
        fields.update(overrides)
        return Job(**fields)

    return _make
