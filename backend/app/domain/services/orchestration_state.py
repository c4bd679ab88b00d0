"""
Orchestration State
Owns all process-lifetime campaign state and its lifecycle
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from app.core.config import Settings
from app.domain.services.conversation_ledger import ConversationLedger
from app.domain.services.correlation_index import CorrelationIndex
from app.domain.services.event_broadcaster import EventBroadcaster
from app.domain.services.job_store import JobStore

logger = logging.getLogger(__name__)


JobRemovalHook = Callable[[str], None]


class OrchestrationState:
    """
    Job Store, Correlation Index, Conversation Ledger and Event Broadcaster
    behind one object.

    All mutation happens on the event loop thread; none of the methods here
    await between a check and the write that depends on it.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.jobs = JobStore()
        self.correlation = CorrelationIndex()
        self.ledger = ConversationLedger()
        self.broadcaster = EventBroadcaster()

        self._removal_hooks: List[JobRemovalHook] = []
        self._reaper_task: Optional[asyncio.Task] = None

    def on_job_removed(self, hook: JobRemovalHook) -> None:
        """Register a callback run whenever a job is deleted or reaped."""
        self._removal_hooks.append(hook)

    def delete_job(self, job_id: str) -> bool:
        """
        Remove a job and everything pointing at it.

        Running dispatch loops notice on their next iteration; pending
        retries are cancelled by the removal hooks.
        """
        if not self.jobs.delete(job_id):
            return False

        dropped = self.correlation.drop_job(job_id)
        self.broadcaster.close_job(job_id)
        for hook in self._removal_hooks:
            try:
                hook(job_id)
            except Exception as e:
                logger.error(f"Job removal hook failed for {job_id}: {e}")

        logger.info(f"Job {job_id} removed ({dropped} index entries dropped)")
        return True

    def reap_expired(self, now: Optional[datetime] = None) -> List[str]:
        """Delete complete jobs older than the retention window."""
        retention = timedelta(hours=self.settings.job_retention_hours)
        expired = self.jobs.expired(retention, now)
        for job_id in expired:
            self.delete_job(job_id)
        if expired:
            logger.info(f"Reaped {len(expired)} expired jobs")
        return expired

    async def start(self) -> None:
        if self._reaper_task is None:
            self._reaper_task = asyncio.create_task(self._periodic_reap())
            logger.info(
                f"Orchestration state started (retention {self.settings.job_retention_hours}h)"
            )

    async def _periodic_reap(self):
        """Periodically evict finished jobs"""
        while True:
            try:
                await asyncio.sleep(self.settings.reap_interval_seconds)
                self.reap_expired()
            except asyncio.CancelledError:
                logger.info("Reaper task cancelled")
                break
            except Exception as e:
                logger.error(f"Error in reaper task: {e}")

    async def shutdown(self) -> None:
        logger.info("Shutting down orchestration state...")

        if self._reaper_task:
            self._reaper_task.cancel()
            try:
                await self._reaper_task
            except asyncio.CancelledError:
                pass
            self._reaper_task = None

        for job_id in list(self.jobs.ids()):
            self.broadcaster.close_job(job_id)
