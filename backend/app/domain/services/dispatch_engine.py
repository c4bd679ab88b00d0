"""
Dispatch Engine
Drives a campaign job from creation to completion.

Leads are contacted one at a time in their original order with a fixed
delay between them. Call jobs can first probe every number with a short
SMS and drop the ones the SMS provider reports as undeliverable.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Set

from app.domain.interfaces.call_provider import CallProvider
from app.domain.models.campaign_job import (
    CallIndexEntry,
    Job,
    JobMode,
    JobStatus,
    Lead,
    LeadResult,
    LeadStatus,
    Outcome,
    PhoneIndexEntry,
)
from app.domain.models.conversation import MessageDirection
from app.domain.models.stream_events import (
    CompleteEvent,
    ProbeDoneEvent,
    ProbeEvent,
    Progress,
    UpdateEvent,
)
from app.domain.services.orchestration_state import OrchestrationState
from app.domain.services.sms_template_manager import SMSTemplateManager
from app.infrastructure.connectors.sms import FAILED_DELIVERY_STATUSES, SMSProvider, SMSResult
from app.utils.phone import format_phone

logger = logging.getLogger(__name__)


CompletionHook = Callable[[Job], Awaitable[None]]


def _failure_message(error: Exception) -> str:
    return getattr(error, "message", None) or str(error) or "Unknown error"


class DispatchEngine:
    """
    Sequential per-lead dispatcher.

    Each running job is an asyncio task. Deleting the job from the store is
    the only way to stop one: the loop checks for the job before every lead
    and returns quietly once it is gone.
    """

    def __init__(
        self,
        state: OrchestrationState,
        caller: CallProvider,
        sms_provider: SMSProvider,
        template_manager: SMSTemplateManager,
        call_delay_seconds: float = 1.5,
        probe_settle_seconds: float = 12,
        on_complete: Optional[CompletionHook] = None,
    ):
        self._state = state
        self._caller = caller
        self._sms = sms_provider
        self._templates = template_manager
        self.call_delay_seconds = call_delay_seconds
        self.probe_settle_seconds = probe_settle_seconds
        self._on_complete = on_complete
        self._tasks: Set[asyncio.Task] = set()

    # =========================================================================
    # Job lifecycle
    # =========================================================================

    def start(self, job_id: str, validate_numbers: bool = False) -> asyncio.Task:
        """Run a job in the background."""
        task = asyncio.create_task(self.run_job(job_id, validate_numbers))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    async def run_job(self, job_id: str, validate_numbers: bool = False) -> None:
        job = self._state.jobs.get(job_id)
        if job is None:
            return

        self._state.jobs.set_status(job_id, JobStatus.RUNNING)
        logger.info(f"Dispatching job {job_id}: {job.total} leads ({job.mode})")

        try:
            if job.mode == JobMode.CALL.value and validate_numbers:
                if not await self._validate_numbers(job_id):
                    return

            if job.mode == JobMode.SMS.value:
                finished = await self._dispatch_sms(job_id)
            else:
                finished = await self._dispatch_calls(job_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Dispatch of job {job_id} stopped unexpectedly: {e}", exc_info=True)
            finished = self._state.jobs.exists(job_id)

        if finished:
            await self._finish(job_id)
        else:
            logger.info(f"Job {job_id} was removed during dispatch, stopping")

    async def _finish(self, job_id: str) -> None:
        if not self._state.jobs.set_status(job_id, JobStatus.COMPLETE):
            return
        job = self._state.jobs.get(job_id)
        counts = job.counts()

        if job.mode == JobMode.SMS.value:
            event = CompleteEvent(total=job.total, sent=counts["sent"], errors=counts["errors"])
            logger.info(f"Job {job_id} complete: {counts['sent']} sent, {counts['errors']} errors")
        else:
            event = CompleteEvent(total=job.total, initiated=counts["initiated"], errors=counts["errors"])
            logger.info(f"Job {job_id} complete: {counts['initiated']} initiated, {counts['errors']} errors")

        self._state.broadcaster.complete(job_id, event)

        if self._on_complete is not None:
            try:
                await self._on_complete(job)
            except Exception as e:
                logger.error(f"Completion handling failed for job {job_id}: {e}")

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # =========================================================================
    # Call mode
    # =========================================================================

    async def initiate_call(self, lead: Lead) -> str:
        """Place one call. Raises CallProviderError on failure."""
        return await self._caller.start_call(lead)

    def _publish_update(
        self, job_id: str, index: int, result: LeadResult, total: int, done: bool = True
    ) -> None:
        self._state.broadcaster.publish(
            job_id,
            UpdateEvent(
                index=index,
                result=result.to_dict(),
                progress=Progress(current=index + 1 if done else index, total=total),
            ),
        )

    async def _dispatch_calls(self, job_id: str) -> bool:
        """
        Call every lead in order.

        Returns:
            False if the job disappeared mid-loop
        """
        total = self._state.jobs.get(job_id).total

        for index in range(total):
            if not self._state.jobs.exists(job_id):
                return False

            calling = self._state.jobs.set_result(job_id, index, {"status": LeadStatus.CALLING.value})
            if calling is None:
                return False
            self._publish_update(job_id, index, calling, total, done=False)

            lead = calling.to_lead()
            call_id = None
            try:
                call_id = await self.initiate_call(lead)
                patch = {"status": LeadStatus.INITIATED.value, "call_id": call_id}
            except asyncio.CancelledError:
                raise
            except Exception as e:
                patch = {"status": LeadStatus.ERROR.value, "error": _failure_message(e)}

            patch["phone"] = format_phone(lead.phone)
            updated = self._state.jobs.set_result(job_id, index, patch)
            if updated is None:
                return False
            if call_id:
                self._state.correlation.register_call(
                    call_id, CallIndexEntry(job_id=job_id, lead_index=index, lead=lead)
                )
                logger.info(f"[{index + 1}/{total}] Call initiated for {lead.name or lead.phone}: {call_id}")
            else:
                logger.warning(f"[{index + 1}/{total}] Call failed for {lead.name or lead.phone}: {updated.error}")
            self._publish_update(job_id, index, updated, total)

            if index < total - 1:
                await asyncio.sleep(self.call_delay_seconds)

        return self._state.jobs.exists(job_id)

    # =========================================================================
    # Number validation
    # =========================================================================

    async def _send_probe(self, result: LeadResult) -> SMSResult:
        message = self._templates.render_probe(result)
        sent = await self._sms.send_sms(result.phone, message)
        if sent.success:
            self._state.ledger.append(result.phone, MessageDirection.OUTBOUND, message)
        return sent

    async def _probe_status(self, sent) -> Optional[str]:
        """Delivery status of one probe, or None when it cannot be determined."""
        if isinstance(sent, BaseException) or not sent.success or not sent.message_id:
            return None
        try:
            return await self._sms.get_message_status(sent.message_id)
        except Exception as e:
            logger.warning(f"Probe status lookup failed for {sent.message_id}: {e}")
            return None

    async def _validate_numbers(self, job_id: str) -> bool:
        """
        Probe every number and admit only the reachable leads.

        Probes go out concurrently; after the settle interval each is
        re-queried. Only an explicit failed/undelivered status drops a lead.

        Returns:
            False if the job disappeared while probing
        """
        candidates: List[LeadResult] = list(self._state.jobs.get(job_id).results)
        logger.info(f"Probing {len(candidates)} numbers for job {job_id}")

        sends = await asyncio.gather(
            *(self._send_probe(result) for result in candidates),
            return_exceptions=True,
        )
        await asyncio.sleep(self.probe_settle_seconds)
        if not self._state.jobs.exists(job_id):
            return False

        statuses = await asyncio.gather(*(self._probe_status(sent) for sent in sends))
        if not self._state.jobs.exists(job_id):
            return False

        kept: List[LeadResult] = []
        for index, (result, status) in enumerate(zip(candidates, statuses)):
            keep = status not in FAILED_DELIVERY_STATUSES
            if keep:
                kept.append(result)
            self._state.broadcaster.publish(
                job_id,
                ProbeEvent(index=index, phone=result.phone, status=status or "unknown", kept=keep),
            )

        job = self._state.jobs.admit(job_id, kept)
        dropped = len(candidates) - len(kept)
        self._state.broadcaster.publish(
            job_id,
            ProbeDoneEvent(
                checked=len(candidates),
                dropped=dropped,
                remaining=len(kept),
                job=job.to_dict(),
            ),
        )
        logger.info(f"Probe done for job {job_id}: {len(candidates)} checked, {dropped} dropped")
        return True

    # =========================================================================
    # SMS mode
    # =========================================================================

    async def _dispatch_sms(self, job_id: str) -> bool:
        """
        Text every lead in order.

        Returns:
            False if the job disappeared mid-loop
        """
        job = self._state.jobs.get(job_id)
        total, template = job.total, job.template

        for index in range(total):
            if not self._state.jobs.exists(job_id):
                return False

            sending = self._state.jobs.set_result(job_id, index, {"status": LeadStatus.SENDING.value})
            if sending is None:
                return False
            self._publish_update(job_id, index, sending, total, done=False)

            lead = sending.to_lead()
            message = self._templates.render_outreach(lead, template)
            try:
                sent = await self._sms.send_sms(lead.phone, message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                sent = SMSResult(success=False, error=_failure_message(e))

            if sent.success:
                patch = {
                    "status": LeadStatus.SENT.value,
                    "outcome": Outcome.SENT.value,
                    "sent_at": sent.sent_at or datetime.utcnow(),
                    "message_id": sent.message_id,
                }
            else:
                patch = {"status": LeadStatus.ERROR.value, "error": sent.error or "Unknown error"}

            patch["phone"] = format_phone(lead.phone)
            updated = self._state.jobs.set_result(job_id, index, patch)
            if updated is None:
                return False
            if sent.success:
                self._state.ledger.append(lead.phone, MessageDirection.OUTBOUND, message)
                self._state.correlation.register_phone(
                    lead.phone, PhoneIndexEntry(job_id=job_id, lead_index=index)
                )
                logger.info(f"[{index + 1}/{total}] SMS sent to {lead.name or lead.phone}")
            else:
                logger.warning(f"[{index + 1}/{total}] SMS failed for {lead.name or lead.phone}: {updated.error}")
            self._publish_update(job_id, index, updated, total)

            if index < total - 1:
                await asyncio.sleep(self.call_delay_seconds)

        return self._state.jobs.exists(job_id)
