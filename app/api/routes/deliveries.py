"""Diagnostics for background delivery jobs."""

from typing import Optional

from fastapi import APIRouter, Query

from app.core.exceptions import NotFoundError
from app.services.purchase.delivery import get_job_status, list_jobs

router = APIRouter()


@router.get("/delivery-jobs")
def list_delivery_jobs(
    transaction_id: Optional[str] = Query(None, description="Only jobs for this transaction"),
) -> list[dict]:
    """List the delivery jobs this process has run or queued."""
    return list_jobs(transaction_id)


@router.get("/delivery-jobs/{job_id}")
def get_delivery_job(job_id: str) -> dict:
    job = get_job_status(job_id)
    if job is None:
        raise NotFoundError(f"Delivery job '{job_id}' not found", code="job_not_found")
    return job
