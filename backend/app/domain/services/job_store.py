"""
Job Store
In-memory arena of campaign jobs keyed by job id
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from app.domain.models.campaign_job import (
    JOB_STATUS_ORDER,
    Job,
    JobMode,
    JobStatus,
    Lead,
    LeadResult,
    LeadStatus,
)

logger = logging.getLogger(__name__)


class JobStore:
    """
    Holds every in-flight and finished job for the process lifetime.

    set_status and set_result are the only mutation primitives; both
    tolerate the job having been deleted in the meantime and report it by
    returning False/None instead of raising.
    """

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._reported: set[str] = set()

    def create(self, leads: List[Lead], mode: JobMode, template: Optional[str] = None) -> Job:
        job = Job(
            mode=mode,
            total=len(leads),
            template=template,
            results=[LeadResult(**lead.model_dump()) for lead in leads],
        )
        self._jobs[job.id] = job
        logger.info(f"Job created: {job.id} ({job.mode}, {job.total} leads)")
        return job

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def ids(self) -> List[str]:
        return list(self._jobs)

    def exists(self, job_id: str) -> bool:
        return job_id in self._jobs

    def delete(self, job_id: str) -> bool:
        self._reported.discard(job_id)
        return self._jobs.pop(job_id, None) is not None

    def set_status(self, job_id: str, status: JobStatus) -> bool:
        """
        Advance a job's status. Regressions are ignored.

        Returns:
            True if the job exists and now has the given status
        """
        job = self._jobs.get(job_id)
        if job is None:
            return False
        value = JobStatus(status).value
        if JOB_STATUS_ORDER[value] < JOB_STATUS_ORDER[JobStatus(job.status).value]:
            logger.warning(f"Ignoring status regression for job {job_id}: {job.status} -> {value}")
            return False
        job.status = value
        if value == JobStatus.COMPLETE.value and job.completed_at is None:
            job.completed_at = datetime.utcnow()
        return True

    def set_result(self, job_id: str, index: int, patch: Dict[str, Any]) -> Optional[LeadResult]:
        """
        Merge fields into one lead result.

        Returns:
            The updated result, or None if the job or index is gone
        """
        job = self._jobs.get(job_id)
        if job is None or not 0 <= index < len(job.results):
            return None
        updated = job.results[index].model_copy(update=patch)
        # model_copy skips validation; keep enum fields as plain values
        for field in ("status", "outcome"):
            value = getattr(updated, field)
            if hasattr(value, "value"):
                setattr(updated, field, value.value)
        job.results[index] = updated
        return updated

    def admit(self, job_id: str, leads: List[LeadResult]) -> Optional[Job]:
        """
        Replace a pending job's lead list and fix its total.

        Used once, after number validation and before any lead is
        dispatched, so result indices are stable from then on.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None
        if any(r.status != LeadStatus.PENDING.value for r in job.results):
            raise RuntimeError(f"Job {job_id} already started dispatching")
        job.results = [r.model_copy() for r in leads]
        job.total = len(job.results)
        return job

    def mark_reported(self, job_id: str) -> bool:
        """
        Claim the job's single aggregate report.

        Returns:
            True the first time for a given job, False afterwards
        """
        if job_id in self._reported or job_id not in self._jobs:
            return False
        self._reported.add(job_id)
        return True

    def expired(self, retention: timedelta, now: Optional[datetime] = None) -> List[str]:
        """Ids of complete jobs finished longer than `retention` ago."""
        now = now or datetime.utcnow()
        return [
            job.id for job in self._jobs.values()
            if job.status == JobStatus.COMPLETE.value
            and job.completed_at is not None
            and now - job.completed_at > retention
        ]

    def __len__(self) -> int:
        return len(self._jobs)
