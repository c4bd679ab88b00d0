"""
Report Service
Renders and emails the aggregate campaign report once a job is settled.
"""
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.core.config import Settings
from app.domain.models.campaign_job import Job, Outcome
from app.domain.services.email_template_manager import (
    CAMPAIGN_REPORT,
    EmailTemplateManager,
    RenderedEmail,
    get_email_template_manager,
)
from app.infrastructure.connectors.email import SMTPConnector

logger = logging.getLogger(__name__)


HIGHLIGHT_OUTCOMES = (Outcome.HOT.value, Outcome.WARM.value)


class ReportService:
    """
    Campaign report delivery.

    Reports are best-effort: a missing SMTP configuration or recipient
    skips the send, and delivery failures are logged and swallowed.
    """

    def __init__(
        self,
        settings: Settings,
        connector: Optional[SMTPConnector] = None,
        template_manager: Optional[EmailTemplateManager] = None
    ):
        self._settings = settings
        self._recipient = settings.report_email_to
        self.connector = connector or SMTPConnector(settings)
        self.template_manager = template_manager or get_email_template_manager()

    def build_context(self, job: Job) -> Dict[str, Any]:
        counts = Counter(
            result.outcome or ("error" if result.error else "pending")
            for result in job.results
        )
        highlights: List[Dict[str, Any]] = [
            {
                "name": result.name,
                "phone": result.phone,
                "outcome": result.outcome,
                "duration": result.duration,
                "summary": result.summary or result.last_reply,
            }
            for result in job.results
            if result.outcome in HIGHLIGHT_OUTCOMES
        ]
        # Hot leads first
        highlights.sort(key=lambda lead: HIGHLIGHT_OUTCOMES.index(lead["outcome"]))

        return {
            "job_id": job.id,
            "mode": job.mode,
            "total": job.total,
            "counts": dict(counts.most_common()),
            "highlights": highlights,
            "agent_name": self._settings.agent_name,
            "business_name": self._settings.business_name,
            "generated_at": datetime.utcnow().strftime("%Y-%m-%d %H:%M UTC"),
        }

    def render(self, job: Job) -> RenderedEmail:
        return self.template_manager.render_email(CAMPAIGN_REPORT, **self.build_context(job))

    async def send_report(self, job: Job) -> bool:
        """
        Email the report for a job.

        Returns:
            True if the email was handed to the SMTP server
        """
        if not self._recipient or not self.connector.is_configured():
            logger.info(f"Report for job {job.id} skipped: SMTP or REPORT_EMAIL_TO not configured")
            return False

        try:
            email = self.render(job)
            await self.connector.send_email(
                to=[self._recipient],
                subject=email.subject,
                body=email.body,
                body_html=email.body_html,
            )
        except Exception as e:
            logger.error(f"Report for job {job.id} failed: {e}")
            return False

        logger.info(f"Report for job {job.id} sent to {self._recipient}")
        return True
