"""
Campaign Service
Wires the orchestration state, providers and background workers together
and executes the side effects of webhook resolution.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.core.config import Settings, get_settings
from app.core.validation import ProviderValidator
from app.domain.interfaces.call_provider import CallProvider
from app.domain.models.campaign_job import Job, JobMode, Lead, Outcome
from app.domain.models.stream_events import InitEvent, UpdateEvent
from app.domain.services.dispatch_engine import DispatchEngine
from app.domain.services.event_broadcaster import Subscriber
from app.domain.services.orchestration_state import OrchestrationState
from app.domain.services.reconciliation import ReconciledRow, reconcile_job, render_csv
from app.domain.services.retry_scheduler import RetryScheduler
from app.domain.services.sms_template_manager import SMSTemplateManager
from app.domain.services.webhook_resolvers import (
    BroadcastEvent,
    CallEndedEvent,
    Effect,
    Resolution,
    ScheduleRetry,
    SendHotLeadAlert,
    SendReplyAlert,
    SmsReplyEvent,
    TriggerReport,
    resolve_call_ended,
    resolve_sms_reply,
)
from app.infrastructure.connectors.sms import SMSProvider, get_sms_provider
from app.infrastructure.telephony.vapi_caller import VapiCaller
from app.services.notification_service import NotificationService
from app.services.report_service import ReportService

logger = logging.getLogger(__name__)


class LeadAdmissionError(Exception):
    """Uploaded rows could not be turned into any callable lead."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class CampaignService:
    """
    Entry point for every campaign operation.

    Responsibilities:
    - Admit leads and launch jobs on the dispatch engine
    - Feed provider webhooks through the resolvers and run their effects
    - Reconcile results on demand and export them
    - Start and stop the background workers with the application
    """

    def __init__(
        self,
        settings: Settings,
        state: Optional[OrchestrationState] = None,
        caller: Optional[CallProvider] = None,
        sms_provider: Optional[SMSProvider] = None,
        notifier: Optional[NotificationService] = None,
        reporter: Optional[ReportService] = None,
    ):
        self.settings = settings
        self.state = state or OrchestrationState(settings)
        self.caller = caller or VapiCaller(settings)
        self.sms_provider = sms_provider or get_sms_provider(settings)
        self.templates = SMSTemplateManager(
            agent_name=settings.agent_name,
            business_name=settings.business_name,
        )
        self.notifier = notifier or NotificationService(settings, self.sms_provider, self.templates)
        self.reporter = reporter or ReportService(settings)
        self.validator = ProviderValidator(settings)

        self.engine = DispatchEngine(
            self.state,
            self.caller,
            self.sms_provider,
            self.templates,
            call_delay_seconds=settings.call_delay_seconds,
            probe_settle_seconds=settings.probe_settle_seconds,
            on_complete=self._on_job_complete,
        )
        self.retries = RetryScheduler(
            self.state,
            self.engine.initiate_call,
            settings.retry_delay_seconds,
        )

    # =========================================================================
    # Jobs
    # =========================================================================

    def admit_leads(
        self,
        rows: List[Dict[str, Any]],
        mapping: Dict[str, Optional[str]],
        limit: Optional[int] = None,
    ) -> List[Lead]:
        """
        Map uploaded rows to leads.

        Rows are capped at `limit` before rows without a phone number are
        dropped.

        Raises:
            LeadAdmissionError: If no row has a phone number
        """
        limit = limit if limit is not None else self.settings.default_lead_limit
        leads = [Lead.from_row(row, mapping) for row in rows[:limit]]
        leads = [lead for lead in leads if lead.phone]

        if not leads:
            phone_column = mapping.get("phone")
            sample = rows[0] if rows else {}
            sample_value = sample.get(phone_column) if phone_column else "no column mapped"
            raise LeadAdmissionError(
                f'No leads with phone numbers found. Phone column mapped to "{phone_column}", '
                f'sample value: "{sample_value}". Check your column mapping.'
            )
        return leads

    def launch_job(
        self,
        rows: List[Dict[str, Any]],
        mapping: Dict[str, Optional[str]],
        limit: Optional[int] = None,
        mode: JobMode = JobMode.CALL,
        validate_numbers: bool = False,
        template: Optional[str] = None,
    ) -> Job:
        """
        Create a job and start dispatching it in the background.

        Raises:
            ConfigurationError: If the channel's credentials are missing
            LeadAdmissionError: If no usable lead remains
        """
        mode = JobMode(mode)
        self.validator.require_for_job(mode.value, validate_numbers)
        leads = self.admit_leads(rows, mapping, limit)

        job = self.state.jobs.create(leads, mode, template)
        self.engine.start(job.id, validate_numbers=validate_numbers and mode == JobMode.CALL)
        logger.info(
            f"Launched job {job.id}: {job.total} leads, mode={mode.value}, "
            f"validate_numbers={validate_numbers}"
        )
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.state.jobs.get(job_id)

    def delete_job(self, job_id: str) -> bool:
        return self.state.delete_job(job_id)

    def subscribe(self, job_id: str) -> Optional[Subscriber]:
        job = self.state.jobs.get(job_id)
        if job is None:
            return None
        return self.state.broadcaster.subscribe(job_id, InitEvent(job=job.to_dict()))

    def stream(self, subscriber: Subscriber):
        return self.state.broadcaster.stream(subscriber, self.settings.heartbeat_seconds)

    async def _on_job_complete(self, job: Job) -> None:
        await self.notifier.send_completion(job)
        await self.maybe_trigger_report(job.id)

    # =========================================================================
    # Webhooks
    # =========================================================================

    async def handle_call_ended(self, payload: Dict[str, Any]) -> Optional[Resolution]:
        event = CallEndedEvent.from_payload(payload)
        if event is None:
            return None
        resolution = resolve_call_ended(event, self.state)
        await self.apply_effects(resolution.effects)
        return resolution

    async def handle_sms_reply(self, payload: Dict[str, Any]) -> Optional[Resolution]:
        event = SmsReplyEvent.from_payload(payload)
        if event is None:
            logger.info("SMS webhook without a sender number, ignoring")
            return None
        resolution = resolve_sms_reply(event, self.state)
        await self.apply_effects(resolution.effects)
        return resolution

    async def apply_effects(self, effects: List[Effect]) -> None:
        """Run resolver side effects in order. Failures never propagate."""
        for effect in effects:
            try:
                await self._apply(effect)
            except Exception as e:
                logger.error(f"Effect {type(effect).__name__} failed: {e}", exc_info=True)

    async def _apply(self, effect: Effect) -> None:
        if isinstance(effect, BroadcastEvent):
            self.state.broadcaster.publish(effect.job_id, effect.event)
        elif isinstance(effect, SendHotLeadAlert):
            logger.info(f"HOT LEAD: {effect.lead.name or effect.lead.phone}, sending alert")
            await self.notifier.send_hot_lead_alert(effect.lead, effect.summary, effect.duration)
        elif isinstance(effect, SendReplyAlert):
            await self.notifier.send_reply_alert(
                effect.from_number, effect.body, effect.outcome, effect.lead_name
            )
        elif isinstance(effect, ScheduleRetry):
            self.retries.schedule(effect.call_id, effect.entry)
        elif isinstance(effect, TriggerReport):
            job = self.state.jobs.get(effect.job_id)
            if job is not None:
                await self.reporter.send_report(job)

    async def maybe_trigger_report(self, job_id: str) -> bool:
        """Send the job's report if every lead is settled and it was not sent yet."""
        job = self.state.jobs.get(job_id)
        if job is None or not job.all_settled() or not self.state.jobs.mark_reported(job_id):
            return False
        await self.reporter.send_report(job)
        return True

    # =========================================================================
    # Results
    # =========================================================================

    async def reconcile(self, job_id: str) -> Optional[List[ReconciledRow]]:
        """
        Current result of every lead, asking the call provider about calls
        no webhook has reported yet.

        Ended calls found this way are written back to the job, hot leads
        with a summary are alerted once per call, and the report is sent if
        the job is now fully settled.
        """
        job = self.state.jobs.get(job_id)
        if job is None:
            return None

        reconciled = await reconcile_job(job, self.caller)

        for item in reconciled:
            if item.report is None or item.row.outcome is None:
                continue
            updated = self.state.jobs.set_result(
                job_id,
                item.index,
                {
                    "outcome": item.row.outcome,
                    "summary": item.row.summary,
                    "ended_reason": item.row.ended_reason,
                    "duration": item.row.duration,
                },
            )
            if updated is not None:
                self.state.broadcaster.publish(
                    job_id, UpdateEvent(index=item.index, result=updated.to_dict())
                )

        for item in reconciled:
            row = item.row
            if row.outcome != Outcome.HOT.value or not row.call_id or not row.summary:
                continue
            if not self.state.correlation.mark_alerted(row.call_id):
                continue
            entry = self.state.correlation.lookup_call(row.call_id)
            lead = entry.lead if entry else Lead(name=row.name, phone=row.phone)
            logger.info(f"HOT LEAD (from fetch): {row.name}, sending alert")
            await self.notifier.send_hot_lead_alert(lead, row.summary, row.duration)

        await self.maybe_trigger_report(job_id)
        return [item.row for item in reconciled]

    async def results(self, job_id: str) -> Optional[Dict[str, Any]]:
        rows = await self.reconcile(job_id)
        if rows is None:
            return None
        return {
            "results": [row.to_dict() for row in rows],
            "fetchedAt": datetime.utcnow().isoformat() + "Z",
        }

    async def export_csv(self, job_id: str) -> Optional[str]:
        rows = await self.reconcile(job_id)
        if rows is None:
            return None
        return render_csv(rows)

    def conversations(self, job_id: str) -> Optional[List[Dict[str, Any]]]:
        """Each lead's result merged with its full SMS thread."""
        job = self.state.jobs.get(job_id)
        if job is None:
            return None
        return [
            {
                **result.to_dict(),
                "index": index,
                "messages": [m.to_dict() for m in self.state.ledger.thread(result.phone)],
            }
            for index, result in enumerate(job.results)
        ]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def register_webhook(self) -> bool:
        """Point the call provider at our end-of-call webhook. Never raises."""
        url = self.settings.call_webhook_url
        if not url:
            logger.info("SERVER_URL not set, skipping webhook registration")
            return False
        if not self.caller.is_configured():
            logger.info("Call provider not configured, skipping webhook registration")
            return False
        try:
            await self.caller.register_webhook(url)
            return True
        except Exception as e:
            logger.warning(f"Webhook setup failed: {e}")
            return False

    async def startup(self) -> None:
        await self.state.start()
        await self.register_webhook()

    async def shutdown(self) -> None:
        await self.engine.shutdown()
        await self.retries.shutdown()
        await self.state.shutdown()

    def stats(self) -> Dict[str, int]:
        return {
            "jobs": len(self.state.jobs),
            "active_dispatches": self.engine.active_jobs,
            "tracked_calls": self.state.correlation.call_count,
            "tracked_phones": self.state.correlation.phone_count,
            "subscribers": self.state.broadcaster.subscriber_count(),
            "pending_retries": self.retries.pending_count(),
        }


# Singleton instance
_campaign_service: Optional[CampaignService] = None


def get_campaign_service() -> CampaignService:
    """Get or create CampaignService singleton."""
    global _campaign_service
    if _campaign_service is None:
        _campaign_service = CampaignService(get_settings())
    return _campaign_service
