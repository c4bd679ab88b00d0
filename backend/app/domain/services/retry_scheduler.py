"""
Retry Scheduler
Re-dials a lead once after a no-answer, following a fixed delay.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

from app.domain.models.campaign_job import CallIndexEntry, Lead, LeadStatus
from app.domain.models.stream_events import UpdateEvent
from app.domain.services.orchestration_state import OrchestrationState

logger = logging.getLogger(__name__)


CallInitiator = Callable[[Lead], Awaitable[str]]


class RetryScheduler:
    """
    One asyncio task per scheduled retry, grouped by job.

    Tasks are cancelled when their job is deleted or reaped. A retry that
    fires anyway re-checks that the job exists before dialing.
    """

    def __init__(self, state: OrchestrationState, initiate_call: CallInitiator, delay_seconds: float):
        self._state = state
        self._initiate_call = initiate_call
        self.delay_seconds = delay_seconds
        self._tasks: Dict[str, Set[asyncio.Task]] = {}
        state.on_job_removed(self.cancel_job)

    def schedule(self, call_id: str, entry: CallIndexEntry) -> asyncio.Task:
        """Start the retry timer for a call that ended with no answer."""
        task = asyncio.create_task(self._fire(call_id, entry))
        tasks = self._tasks.setdefault(entry.job_id, set())
        tasks.add(task)
        task.add_done_callback(lambda t: self._forget(entry.job_id, t))

        logger.info(
            f"Retry scheduled for {entry.lead.name or entry.lead.phone} "
            f"in {self.delay_seconds / 60:g} min (call {call_id})"
        )
        return task

    def _forget(self, job_id: str, task: asyncio.Task) -> None:
        tasks = self._tasks.get(job_id)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            del self._tasks[job_id]

    async def _fire(self, call_id: str, entry: CallIndexEntry) -> None:
        await asyncio.sleep(self.delay_seconds)

        if not self._state.jobs.exists(entry.job_id):
            logger.info(f"Retry for call {call_id} skipped: job {entry.job_id} no longer exists")
            return

        try:
            new_call_id = await self._initiate_call(entry.lead)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Retry failed for {entry.lead.name or entry.lead.phone}: {e}")
            return

        result = self._state.jobs.set_result(
            entry.job_id,
            entry.lead_index,
            {
                "status": LeadStatus.INITIATED.value,
                "call_id": new_call_id,
                "retried": True,
            },
        )
        if result is None:
            logger.info(f"Retry call {new_call_id} placed but job {entry.job_id} was removed")
            return

        self._state.correlation.register_call(
            new_call_id,
            CallIndexEntry(
                job_id=entry.job_id,
                lead_index=entry.lead_index,
                lead=entry.lead,
                retries=entry.retries + 1,
            ),
        )
        self._state.broadcaster.publish(
            entry.job_id,
            UpdateEvent(index=entry.lead_index, result=result.to_dict()),
        )
        logger.info(f"Retry call initiated for {entry.lead.name or entry.lead.phone}: {new_call_id}")

    def cancel_job(self, job_id: str) -> int:
        """Cancel every pending retry of a job. Returns the number cancelled."""
        tasks = self._tasks.pop(job_id, set())
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info(f"Cancelled {len(tasks)} pending retries for job {job_id}")
        return len(tasks)

    async def shutdown(self) -> None:
        tasks = [t for group in self._tasks.values() for t in group]
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def pending_count(self, job_id: Optional[str] = None) -> int:
        if job_id is not None:
            return len(self._tasks.get(job_id, ()))
        return sum(len(group) for group in self._tasks.values())
