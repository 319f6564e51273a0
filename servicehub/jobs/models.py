"""
Job data models.

A Job is one booking between a customer and a vendor for one catalog
offering. Its status moves only through the state machine; messages,
attachments and status history only ever grow.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from servicehub.types import parse_datetime, to_iso


class JobStatus(str, Enum):
    """Job lifecycle status."""

    PENDING = "pending"  # Booking requested by the customer
    REVIEWING = "reviewing"  # Vendor is looking at the request
    QUOTED = "quoted"  # Vendor sent a quote
    ACCEPTED = "accepted"  # Vendor accepted, waiting on customer
    CONFIRMED = "confirmed"  # Customer confirmed the booking
    IN_PROGRESS = "in_progress"  # Work started
    COMPLETED = "completed"  # Vendor finished the work
    DELIVERED = "delivered"  # Customer accepted the deliverables
    CANCELLED = "cancelled"  # Terminal
    REJECTED = "rejected"  # Terminal, vendor declined the request
    DISPUTED = "disputed"  # Customer disputed the completed work
    CLOSED = "closed"  # Terminal


class ActorRole(str, Enum):
    """Role of a caller with respect to one job."""

    CUSTOMER = "customer"
    VENDOR = "vendor"


class PricingType(str, Enum):
    FIXED = "fixed"
    HOURLY = "hourly"
    PACKAGE = "package"
    CUSTOM = "custom"


class MessageKind(str, Enum):
    MESSAGE = "message"
    STATUS_UPDATE = "status_update"
    SYSTEM = "system"


class Urgency(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"
    EMERGENCY = "emergency"


def _enum_value(enum_cls, value, field_name: str):
    """Coerce a raw value into ``enum_cls`` or raise ValueError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        valid = ", ".join(e.value for e in enum_cls)
        raise ValueError(f"Invalid {field_name}: {value!r}. Must be one of: {valid}") from None


@dataclass
class Pricing:
    """Price agreed for a job, set at creation and refined while quoting."""

    type: PricingType
    amount: float
    currency: str = "USD"
    estimated_total: Optional[float] = None
    final_total: Optional[float] = None

    def __post_init__(self):
        self.type = _enum_value(PricingType, self.type, "pricing type")
        if self.amount < 0:
            raise ValueError("Pricing amount cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "amount": self.amount,
            "currency": self.currency,
            "estimated_total": self.estimated_total,
            "final_total": self.final_total,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pricing":
        return cls(
            type=data["type"],
            amount=data.get("amount", 0),
            currency=data.get("currency", "USD"),
            estimated_total=data.get("estimated_total"),
            final_total=data.get("final_total"),
        )


@dataclass
class Duration:
    """Job duration in whole hours."""

    estimated: Optional[int] = None
    actual: Optional[int] = None


@dataclass
class Scheduling:
    """Dates populated incrementally by transition side effects."""

    preferred_date: Optional[datetime] = None
    confirmed_date: Optional[datetime] = None
    estimated_end_time: Optional[datetime] = None
    timezone: str = "America/New_York"
    duration: Duration = field(default_factory=Duration)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preferred_date": to_iso(self.preferred_date),
            "confirmed_date": to_iso(self.confirmed_date),
            "estimated_end_time": to_iso(self.estimated_end_time),
            "timezone": self.timezone,
            "duration": {
                "estimated": self.duration.estimated,
                "actual": self.duration.actual,
            },
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Scheduling":
        data = data or {}
        duration = data.get("duration") or {}
        return cls(
            preferred_date=parse_datetime(data.get("preferred_date")),
            confirmed_date=parse_datetime(data.get("confirmed_date")),
            estimated_end_time=parse_datetime(data.get("estimated_end_time")),
            timezone=data.get("timezone", "America/New_York"),
            duration=Duration(
                estimated=duration.get("estimated"),
                actual=duration.get("actual"),
            ),
        )


@dataclass
class CompletedDeliverable:
    """Snapshot of a deliverable taken when the customer accepts delivery."""

    name: str
    description: str
    completed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "completed_at": to_iso(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompletedDeliverable":
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            completed_at=parse_datetime(data["completed_at"]),
        )


@dataclass
class Attachment:
    """A file reference attached to a job. The file itself lives elsewhere."""

    name: str
    locator: str
    uploader_id: str
    uploaded_at: datetime
    content_type: Optional[str] = None
    size_bytes: Optional[int] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Attachment name cannot be empty")
        if not self.locator:
            raise ValueError("Attachment locator cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "locator": self.locator,
            "uploader_id": self.uploader_id,
            "uploaded_at": to_iso(self.uploaded_at),
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attachment":
        return cls(
            name=data["name"],
            locator=data["locator"],
            uploader_id=data["uploader_id"],
            uploaded_at=parse_datetime(data["uploaded_at"]),
            content_type=data.get("content_type"),
            size_bytes=data.get("size_bytes"),
        )


@dataclass
class JobMessage:
    """An entry in the job's activity log."""

    sender_id: str
    body: str
    kind: MessageKind
    timestamp: datetime

    def __post_init__(self):
        self.kind = _enum_value(MessageKind, self.kind, "message kind")
        if not self.body or not self.body.strip():
            raise ValueError("Message body cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender_id": self.sender_id,
            "body": self.body,
            "kind": self.kind.value,
            "timestamp": to_iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobMessage":
        return cls(
            sender_id=data["sender_id"],
            body=data["body"],
            kind=data.get("kind", MessageKind.MESSAGE),
            timestamp=parse_datetime(data["timestamp"]),
        )


@dataclass
class StatusHistoryEntry:
    """Audit entry for one accepted transition."""

    status: JobStatus
    timestamp: datetime
    changed_by: str
    reason: Optional[str] = None

    def __post_init__(self):
        self.status = _enum_value(JobStatus, self.status, "status")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": to_iso(self.timestamp),
            "changed_by": self.changed_by,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusHistoryEntry":
        return cls(
            status=data["status"],
            timestamp=parse_datetime(data["timestamp"]),
            changed_by=data["changed_by"],
            reason=data.get("reason"),
        )


@dataclass
class Cancellation:
    cancelled_by: str
    reason: str
    cancelled_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cancelled_by": self.cancelled_by,
            "reason": self.reason,
            "cancelled_at": to_iso(self.cancelled_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cancellation":
        return cls(
            cancelled_by=data["cancelled_by"],
            reason=data["reason"],
            cancelled_at=parse_datetime(data["cancelled_at"]),
        )


@dataclass
class ViewTracking:
    """Per-party view flags. The customer has seen the job at creation."""

    viewed_by_customer: bool = True
    viewed_by_vendor: bool = False
    last_viewed_by_customer: Optional[datetime] = None
    last_viewed_by_vendor: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "viewed_by_customer": self.viewed_by_customer,
            "viewed_by_vendor": self.viewed_by_vendor,
            "last_viewed_by_customer": to_iso(self.last_viewed_by_customer),
            "last_viewed_by_vendor": to_iso(self.last_viewed_by_vendor),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ViewTracking":
        data = data or {}
        return cls(
            viewed_by_customer=bool(data.get("viewed_by_customer", True)),
            viewed_by_vendor=bool(data.get("viewed_by_vendor", False)),
            last_viewed_by_customer=parse_datetime(data.get("last_viewed_by_customer")),
            last_viewed_by_vendor=parse_datetime(data.get("last_viewed_by_vendor")),
        )


@dataclass
class Job:
    """A booking between one customer and one vendor.

    Attributes:
        id: Unique identifier (UUID)
        customer_id: Party who requested the booking
        vendor_id: Party who provides the service
        service_ref: Catalog offering that was booked
        title: Offering title at booking time
        description: Customer's request text
        pricing: Agreed price
        status: Current lifecycle status
        scheduling: Dates filled in by transition side effects
        requirements: Offering requirements copied at booking time
        deliverables: Expected deliverables (delivery notes are appended)
        completed_deliverables: Snapshots taken on delivery
        attachments: Append-only file references
        messages: Append-only activity log
        status_history: One entry per accepted transition
        cancellation: Set exactly once, when the job is cancelled
        tracking: View flags
        version: Optimistic concurrency counter, bumped on every transition
    """

    id: str
    customer_id: str
    vendor_id: str
    service_ref: str
    title: str
    description: str
    pricing: Pricing
    status: JobStatus = JobStatus.PENDING
    scheduling: Scheduling = field(default_factory=Scheduling)
    urgency: Urgency = Urgency.NORMAL
    requirements: List[str] = field(default_factory=list)
    deliverables: List[str] = field(default_factory=list)
    completed_deliverables: List[CompletedDeliverable] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)
    messages: List[JobMessage] = field(default_factory=list)
    status_history: List[StatusHistoryEntry] = field(default_factory=list)
    cancellation: Optional[Cancellation] = None
    tracking: ViewTracking = field(default_factory=ViewTracking)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        """Validate job data."""
        self.status = _enum_value(JobStatus, self.status, "status")
        self.urgency = _enum_value(Urgency, self.urgency, "urgency")
        if not self.customer_id or not self.vendor_id:
            raise ValueError("Job requires both customer_id and vendor_id")
        if not self.service_ref:
            raise ValueError("Job requires a service_ref")
        if len(self.description) > 1000:
            raise ValueError("Description too long (max 1000 characters)")
        if (self.cancellation is None) != (self.status != JobStatus.CANCELLED):
            raise ValueError("cancellation must be set if and only if status is cancelled")

    @property
    def is_terminal(self) -> bool:
        """Check if job is in a terminal state."""
        return self.status in (JobStatus.CANCELLED, JobStatus.REJECTED, JobStatus.CLOSED)

    @property
    def is_active(self) -> bool:
        return not self.is_terminal

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def job_number(self) -> str:
        """Short human-facing reference, e.g. ``JOB-1A2B3C4D``."""
        return f"JOB-{self.id[-8:].upper()}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "vendor_id": self.vendor_id,
            "service_ref": self.service_ref,
            "title": self.title,
            "description": self.description,
            "pricing": self.pricing.to_dict(),
            "status": self.status.value,
            "scheduling": self.scheduling.to_dict(),
            "urgency": self.urgency.value,
            "requirements": list(self.requirements),
            "deliverables": list(self.deliverables),
            "completed_deliverables": [d.to_dict() for d in self.completed_deliverables],
            "attachments": [a.to_dict() for a in self.attachments],
            "messages": [m.to_dict() for m in self.messages],
            "status_history": [h.to_dict() for h in self.status_history],
            "cancellation": self.cancellation.to_dict() if self.cancellation else None,
            "tracking": self.tracking.to_dict(),
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        """Create from dictionary."""
        cancellation = data.get("cancellation")
        return cls(
            id=data["id"],
            customer_id=data["customer_id"],
            vendor_id=data["vendor_id"],
            service_ref=data["service_ref"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            pricing=Pricing.from_dict(data["pricing"]),
            status=data.get("status", JobStatus.PENDING),
            scheduling=Scheduling.from_dict(data.get("scheduling")),
            urgency=data.get("urgency", Urgency.NORMAL),
            requirements=list(data.get("requirements") or []),
            deliverables=list(data.get("deliverables") or []),
            completed_deliverables=[
                CompletedDeliverable.from_dict(d) for d in data.get("completed_deliverables") or []
            ],
            attachments=[Attachment.from_dict(a) for a in data.get("attachments") or []],
            messages=[JobMessage.from_dict(m) for m in data.get("messages") or []],
            status_history=[
                StatusHistoryEntry.from_dict(h) for h in data.get("status_history") or []
            ],
            cancellation=Cancellation.from_dict(cancellation) if cancellation else None,
            tracking=ViewTracking.from_dict(data.get("tracking")),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            version=data.get("version", 1),
        )
