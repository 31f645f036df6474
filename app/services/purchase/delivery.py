"""Background data delivery after a confirmed payment.

The payment webhook must answer ErcasPay before the bundle is delivered, so
delivery is handed to a FastAPI background task.  The task opens its own
session and retries retryable failures with exponential backoff.  Job
progress is kept in an in-memory dict (per process) for diagnostics.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.core.config import Settings, settings
from app.core.logging import get_logger
from app.services.providers.base import DataProviderClient
from app.services.purchase.orchestrator import PurchaseOrchestrator

logger = get_logger(__name__)

# In-memory job tracker
_jobs: dict[str, dict] = {}

# Finished jobs kept for lookup; older ones are evicted when a new job is scheduled
MAX_FINISHED_JOBS = 500
_FINISHED = ("completed", "failed")


@dataclass
class RetryPolicy:
    """How often and how patiently a background delivery is retried."""

    max_attempts: int = 3
    backoff_seconds: float = 2.0
    backoff_max_seconds: float = 30.0

    @classmethod
    def from_settings(cls, config: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=config.delivery_max_attempts,
            backoff_seconds=config.delivery_backoff_seconds,
            backoff_max_seconds=config.delivery_backoff_max_seconds,
        )

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return min(self.backoff_seconds * (2 ** (attempt - 1)), self.backoff_max_seconds)


def schedule_data_delivery(
    background_tasks: BackgroundTasks,
    session_factory: Callable[[], Session],
    provider_clients: dict[str, DataProviderClient],
    transaction_id: UUID,
    policy: Optional[RetryPolicy] = None,
) -> str:
    """Queue delivery for a paid transaction and return the job id."""
    _evict_finished_jobs()
    job_id = str(uuid.uuid4())
    _jobs[job_id] = {
        "job_id": job_id,
        "transaction_id": str(transaction_id),
        "status": "pending",
        "attempts": 0,
        "provider_reference": None,
        "error": None,
        "error_code": None,
    }
    background_tasks.add_task(
        run_delivery_job,
        job_id,
        session_factory,
        provider_clients,
        transaction_id,
        policy or RetryPolicy.from_settings(settings),
    )
    logger.info("Delivery job %s scheduled for transaction %s", job_id, transaction_id)
    return job_id


def run_delivery_job(
    job_id: str,
    session_factory: Callable[[], Session],
    provider_clients: dict[str, DataProviderClient],
    transaction_id: UUID,
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Background task: deliver, retrying retryable failures with backoff."""
    job = _jobs[job_id]
    job["status"] = "running"
    try:
        db: Session = session_factory()
        try:
            orchestrator = PurchaseOrchestrator(db, provider_clients)
            result = orchestrator.process_data_purchase(transaction_id)
            job["attempts"] = 1

            while (
                not result.success
                and result.should_retry
                and job["attempts"] < policy.max_attempts
            ):
                wait = policy.delay(job["attempts"])
                logger.info(
                    "Delivery for %s failed (%s), retrying in %.1fs (attempt %d/%d)",
                    transaction_id,
                    result.error_code,
                    wait,
                    job["attempts"] + 1,
                    policy.max_attempts,
                )
                sleep(wait)
                result = orchestrator.retry_data_purchase(transaction_id)
                job["attempts"] += 1
        finally:
            db.close()
    except Exception as e:
        logger.exception("Delivery job %s crashed for transaction %s", job_id, transaction_id)
        job["status"] = "failed"
        job["error"] = "Delivery job crashed; see server logs"
        return

    if result.success:
        job["status"] = "completed"
        job["provider_reference"] = result.provider_reference
        logger.info("Data delivered for transaction %s", transaction_id)
    else:
        job["status"] = "failed"
        job["error"] = result.error
        job["error_code"] = result.error_code
        logger.error(
            "Data delivery failed for transaction %s after %d attempt(s): %s",
            transaction_id,
            job["attempts"],
            result.error,
        )


def _evict_finished_jobs() -> None:
    """Drop the oldest finished jobs beyond MAX_FINISHED_JOBS."""
    finished = [job_id for job_id, job in _jobs.items() if job["status"] in _FINISHED]
    for job_id in finished[: max(len(finished) - MAX_FINISHED_JOBS, 0)]:
        del _jobs[job_id]


def get_job_status(job_id: str) -> dict | None:
    """Look up a job by ID.  Returns None if not found."""
    return _jobs.get(job_id)


def list_jobs(transaction_id: Optional[str] = None) -> list[dict]:
    """Return tracked jobs, optionally for a single transaction."""
    jobs = list(_jobs.values())
    if transaction_id is not None:
        jobs = [j for j in jobs if j["transaction_id"] == transaction_id]
    return jobs
