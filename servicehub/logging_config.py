"""Logging setup for servicehub.

Two streams are written under ``<data_dir>/logs``:

- ``local-{date}.log``: the regular ``servicehub`` logger output.
- ``job-events-{date}.log``: one line per lifecycle event (transition,
  message, view), meant for grepping the history of a single job.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from servicehub.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

logger = logging.getLogger(__name__)


def _log_dir() -> Path:
    data_dir = os.environ.get("SERVICEHUB_DATA_DIR")
    base = Path(data_dir) if data_dir else get_settings().data_dir
    path = base / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _today() -> str:
    return datetime.now().strftime("%Y-%m-%d")


def setup_servicehub_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure the ``servicehub`` logger with a dated file handler.

    Args:
        level: Level name (case-insensitive). Defaults to the configured
            ``log_level``; unknown names fall back to INFO.

    Returns:
        The configured ``servicehub`` logger.
    """
    level_name = (level or get_settings().log_level).upper()
    if level_name not in _VALID_LEVELS:
        level_name = "INFO"

    logger = logging.getLogger("servicehub")
    logger.setLevel(getattr(logging, level_name))

    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        file_handler = logging.FileHandler(_log_dir() / f"local-{_today()}.log")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if level_name == "DEBUG" and not has_console:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console)

    return logger


def log_job_event(event_type: str, details: str, job_id: str = "-") -> None:
    """Append one line to the job events log."""
    timestamp = datetime.now().isoformat(timespec="seconds")
    try:
        path = _log_dir() / f"job-events-{_today()}.log"
        with open(path, "a", encoding="utf-8") as f:
            f.write(f"{timestamp} | {event_type} | job={job_id} | {details}\n")
    except OSError as exc:
        # Event log is best-effort
        logger.debug("Swallowed %s writing job event log: %s", type(exc).__name__, exc)


def log_transition(
    job_id: str,
    previous: str,
    current: str,
    actor_id: str,
    role: str,
    reason: Optional[str] = None,
) -> None:
    """Record an accepted status transition."""
    details = f"from={previous} to={current} actor={actor_id} role={role}"
    if reason:
        details += f" reason={reason[:80]}"
    log_job_event("transition", details, job_id=job_id)


def log_message(job_id: str, sender_id: str, kind: str, length: int) -> None:
    """Record a message append."""
    log_job_event("message", f"sender={sender_id} kind={kind} chars={length}", job_id=job_id)


def log_view(job_id: str, actor_id: str, role: str) -> None:
    """Record a view-tracking update."""
    log_job_event("view", f"actor={actor_id} role={role}", job_id=job_id)
