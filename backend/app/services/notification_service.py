"""
Notification Service
Operator alerts over SMS: hot leads, inbound replies and campaign completion.

Every send is best-effort. Failures are logged and reported as False;
they never reach job or lead state.
"""
import logging
from typing import Optional

from app.core.config import Settings
from app.domain.models.campaign_job import Job, JobMode, Lead
from app.domain.services.sms_template_manager import SMSTemplateManager
from app.infrastructure.connectors.sms import SMSProvider

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Sends alert texts to the operator phone (TWILIO_TO).

    Integration Points:
    - Call-ended resolver: hot-lead alerts
    - SMS-reply resolver: reply alerts
    - Dispatch engine: completion summary
    - Reconciliation: hot-lead alerts for calls resolved by polling
    """

    def __init__(
        self,
        settings: Settings,
        provider: SMSProvider,
        template_manager: Optional[SMSTemplateManager] = None
    ):
        self._operator_number = settings.twilio_to
        self._provider = provider
        self.template_manager = template_manager or SMSTemplateManager(
            agent_name=settings.agent_name,
            business_name=settings.business_name,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._operator_number) and self._provider.is_configured()

    async def _notify(self, message: str, kind: str) -> bool:
        if not self.is_configured:
            logger.info(f"Operator {kind} alert skipped: no operator number or SMS credentials")
            return False

        try:
            result = await self._provider.send_sms(self._operator_number, message)
        except Exception as e:
            logger.error(f"Operator {kind} alert failed: {e}")
            return False

        if not result.success:
            logger.error(f"Operator {kind} alert failed: {result.error}")
            return False

        logger.info(f"Operator {kind} alert sent ({result.message_id})")
        return True

    async def send_hot_lead_alert(self, lead: Lead, summary: str, duration: Optional[str] = None) -> bool:
        message = self.template_manager.render_hot_lead_alert(lead, summary, duration)
        return await self._notify(message, "hot-lead")

    async def send_reply_alert(
        self,
        from_number: str,
        body: str,
        outcome: str,
        lead_name: Optional[str] = None
    ) -> bool:
        message = self.template_manager.render_reply_alert(from_number, body, outcome, lead_name)
        return await self._notify(message, "reply")

    async def send_completion(self, job: Job) -> bool:
        counts = job.counts()
        sms_mode = job.mode == JobMode.SMS.value
        message = self.template_manager.render_completion(
            total=job.total,
            succeeded=counts["sent"] if sms_mode else counts["initiated"],
            errors=counts["errors"],
            sms_mode=sms_mode,
        )
        return await self._notify(message, "completion")
