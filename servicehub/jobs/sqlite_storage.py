"""SQLite storage backend for jobs.

Layout:
- ``jobs``: one row per job. Lifecycle fields live in a JSON ``document``
  column guarded by ``version``; view flags are plain columns so they can
  be written without touching the document.
- ``job_messages`` / ``job_attachments``: append-only tables, ordered by
  their autoincrement ``seq``.
"""

import contextlib
import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from servicehub.config import get_settings
from servicehub.jobs.models import (
    ActorRole,
    Attachment,
    Job,
    JobMessage,
    JobStatus,
    ViewTracking,
)
from servicehub.types import VersionConflictError, parse_datetime, to_iso, utc_now

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    customer_id TEXT NOT NULL,
    vendor_id TEXT NOT NULL,
    service_ref TEXT NOT NULL,
    status TEXT NOT NULL,
    document TEXT NOT NULL,
    viewed_by_customer INTEGER NOT NULL DEFAULT 1,
    viewed_by_vendor INTEGER NOT NULL DEFAULT 0,
    last_viewed_by_customer TEXT,
    last_viewed_by_vendor TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1
);
CREATE INDEX IF NOT EXISTS idx_jobs_customer_status ON jobs(customer_id, status);
CREATE INDEX IF NOT EXISTS idx_jobs_vendor_status ON jobs(vendor_id, status);
CREATE INDEX IF NOT EXISTS idx_jobs_status_created ON jobs(status, created_at);

CREATE TABLE IF NOT EXISTS job_messages (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT NOT NULL REFERENCES jobs(id),
    sender_id TEXT NOT NULL,
    body TEXT NOT NULL,
    kind TEXT NOT NULL,
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_job_messages_job ON job_messages(job_id, seq);

CREATE TABLE IF NOT EXISTS job_attachments (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT NOT NULL REFERENCES jobs(id),
    name TEXT NOT NULL,
    locator TEXT NOT NULL,
    uploader_id TEXT NOT NULL,
    uploaded_at TEXT NOT NULL,
    content_type TEXT,
    size_bytes INTEGER
);
CREATE INDEX IF NOT EXISTS idx_job_attachments_job ON job_attachments(job_id, seq);
"""

# Fields stored outside the JSON document
_COLUMN_FIELDS = (
    "id",
    "customer_id",
    "vendor_id",
    "service_ref",
    "status",
    "messages",
    "attachments",
    "tracking",
    "created_at",
    "updated_at",
    "version",
)

_INSERT_MESSAGE = """
INSERT INTO job_messages (job_id, sender_id, body, kind, timestamp)
SELECT ?, ?, ?, ?, ? WHERE EXISTS (SELECT 1 FROM jobs WHERE id = ?)
"""


def _document(job: Job) -> str:
    data = job.to_dict()
    for key in _COLUMN_FIELDS:
        data.pop(key, None)
    return json.dumps(data)


class SQLiteJobStorage:
    """SQLite-backed job storage with optimistic concurrency on transitions."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else get_settings().resolved_db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)
        logger.debug(f"Job storage ready at {self.db_path}")

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Context manager that handles transactions AND closes connection."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    # === Row mapping ===

    def _row_to_job(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Job:
        data = json.loads(row["document"])
        data.update(
            id=row["id"],
            customer_id=row["customer_id"],
            vendor_id=row["vendor_id"],
            service_ref=row["service_ref"],
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            version=row["version"],
        )
        job = Job.from_dict(data)
        job.tracking = ViewTracking(
            viewed_by_customer=bool(row["viewed_by_customer"]),
            viewed_by_vendor=bool(row["viewed_by_vendor"]),
            last_viewed_by_customer=parse_datetime(row["last_viewed_by_customer"]),
            last_viewed_by_vendor=parse_datetime(row["last_viewed_by_vendor"]),
        )
        job.messages = [
            JobMessage(
                sender_id=m["sender_id"],
                body=m["body"],
                kind=m["kind"],
                timestamp=parse_datetime(m["timestamp"]),
            )
            for m in conn.execute(
                "SELECT * FROM job_messages WHERE job_id = ? ORDER BY seq", (job.id,)
            ).fetchall()
        ]
        job.attachments = [
            Attachment(
                name=a["name"],
                locator=a["locator"],
                uploader_id=a["uploader_id"],
                uploaded_at=parse_datetime(a["uploaded_at"]),
                content_type=a["content_type"],
                size_bytes=a["size_bytes"],
            )
            for a in conn.execute(
                "SELECT * FROM job_attachments WHERE job_id = ? ORDER BY seq", (job.id,)
            ).fetchall()
        ]
        return job

    @staticmethod
    def _insert_message(conn: sqlite3.Connection, job_id: str, message: JobMessage) -> int:
        cursor = conn.execute(
            _INSERT_MESSAGE,
            (
                job_id,
                message.sender_id,
                message.body,
                message.kind.value,
                to_iso(message.timestamp),
                job_id,
            ),
        )
        return cursor.rowcount

    # === Jobs ===

    def save_job(self, job: Job) -> str:
        """Create a job along with any initial messages and attachments."""
        if job.created_at is None:
            job.created_at = utc_now()
        job.updated_at = job.created_at
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO jobs (
                    id, customer_id, vendor_id, service_ref, status, document,
                    viewed_by_customer, viewed_by_vendor,
                    last_viewed_by_customer, last_viewed_by_vendor,
                    created_at, updated_at, version
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job.id,
                    job.customer_id,
                    job.vendor_id,
                    job.service_ref,
                    job.status.value,
                    _document(job),
                    1 if job.tracking.viewed_by_customer else 0,
                    1 if job.tracking.viewed_by_vendor else 0,
                    to_iso(job.tracking.last_viewed_by_customer),
                    to_iso(job.tracking.last_viewed_by_vendor),
                    to_iso(job.created_at),
                    to_iso(job.updated_at),
                    job.version,
                ),
            )
            for message in job.messages:
                self._insert_message(conn, job.id, message)
            for attachment in job.attachments:
                self._insert_attachment(conn, job.id, attachment)
        return job.id

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
            return self._row_to_job(conn, row) if row else None

    def list_jobs(
        self,
        customer_id: Optional[str] = None,
        vendor_id: Optional[str] = None,
        statuses: Optional[Iterable[JobStatus]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        """List jobs with optional filters, newest first."""
        clauses, params = [], []
        if customer_id is not None:
            clauses.append("customer_id = ?")
            params.append(customer_id)
        if vendor_id is not None:
            clauses.append("vendor_id = ?")
            params.append(vendor_id)
        if statuses is not None:
            values = [JobStatus(s).value for s in statuses]
            if not values:
                return []
            clauses.append(f"status IN ({', '.join('?' for _ in values)})")
            params.extend(values)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"SELECT * FROM jobs {where} ORDER BY created_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_job(conn, row) for row in rows]

    def update_job(
        self,
        job: Job,
        expected_version: int,
        appended_messages: Sequence[JobMessage] = (),
    ) -> int:
        """Compare-and-swap the lifecycle fields of a job."""
        updated_at = job.updated_at or utc_now()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE jobs SET
                    status = ?,
                    document = ?,
                    updated_at = ?,
                    version = version + 1
                WHERE id = ? AND version = ?
                """,
                (job.status.value, _document(job), to_iso(updated_at), job.id, expected_version),
            )
            if cursor.rowcount == 0:
                current = conn.execute(
                    "SELECT version FROM jobs WHERE id = ?", (job.id,)
                ).fetchone()
                actual = current["version"] if current else -1
                raise VersionConflictError("jobs", job.id, expected_version, actual)

            for message in appended_messages:
                self._insert_message(conn, job.id, message)

        job.version = expected_version + 1
        return job.version

    # === Field-level appends ===

    def append_message(self, job_id: str, message: JobMessage) -> bool:
        """Append a message to the activity log."""
        with self._connect() as conn:
            return self._insert_message(conn, job_id, message) == 1

    @staticmethod
    def _insert_attachment(conn: sqlite3.Connection, job_id: str, attachment: Attachment) -> int:
        cursor = conn.execute(
            """
            INSERT INTO job_attachments (
                job_id, name, locator, uploader_id, uploaded_at, content_type, size_bytes
            )
            SELECT ?, ?, ?, ?, ?, ?, ? WHERE EXISTS (SELECT 1 FROM jobs WHERE id = ?)
            """,
            (
                job_id,
                attachment.name,
                attachment.locator,
                attachment.uploader_id,
                to_iso(attachment.uploaded_at),
                attachment.content_type,
                attachment.size_bytes,
                job_id,
            ),
        )
        return cursor.rowcount

    def append_attachment(self, job_id: str, attachment: Attachment) -> bool:
        """Append an attachment record."""
        with self._connect() as conn:
            return self._insert_attachment(conn, job_id, attachment) == 1

    def update_view_tracking(self, job_id: str, role: ActorRole, viewed_at: datetime) -> bool:
        """Mark the job as viewed by ``role``."""
        party = "vendor" if ActorRole(role) == ActorRole.VENDOR else "customer"
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE jobs SET viewed_by_{party} = 1, last_viewed_by_{party} = ? WHERE id = ?",
                (to_iso(viewed_at), job_id),
            )
            return cursor.rowcount == 1
