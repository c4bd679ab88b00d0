"""
Shared fixtures: settings with zero pacing and in-memory provider fakes
"""
import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import pytest

from app.core.config import Settings
from app.domain.interfaces.call_provider import CallProvider, CallProviderError
from app.domain.models.campaign_job import CallReport, JobStatus, Lead
from app.infrastructure.connectors.sms import SMSProvider, SMSResult
from app.utils.phone import format_phone


OPERATOR_NUMBER = "+15559999999"


class FakeCaller(CallProvider):
    """Call provider that hands out sequential call ids."""

    def __init__(self):
        self.started: List[Lead] = []
        self.fail_numbers: Dict[str, str] = {}
        self.reports: Dict[str, object] = {}
        self.webhooks: List[str] = []
        self._next_id = 0

    @property
    def name(self) -> str:
        return "fake"

    def is_configured(self) -> bool:
        return True

    async def start_call(self, lead: Lead) -> str:
        self.started.append(lead)
        error = self.fail_numbers.get(format_phone(lead.phone))
        if error:
            raise CallProviderError(error, status_code=400)
        self._next_id += 1
        return f"call-{self._next_id}"

    async def get_call(self, call_id: str) -> CallReport:
        report = self.reports.get(call_id)
        if isinstance(report, Exception):
            raise report
        if report is None:
            return CallReport(call_id=call_id, status="in-progress")
        return report

    async def register_webhook(self, url: str) -> None:
        self.webhooks.append(url)


class FakeSMSProvider(SMSProvider):
    """SMS provider recording every send; delivery status is looked up by number."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.fail_numbers: set = set()
        self.statuses: Dict[str, Optional[str]] = {}
        self._numbers_by_id: Dict[str, str] = {}

    @property
    def provider_name(self) -> str:
        return "fake"

    def is_configured(self) -> bool:
        return True

    async def send_sms(self, to_number, message, from_number=None, metadata=None) -> SMSResult:
        number = format_phone(to_number)
        self.sent.append((number, message))
        if number in self.fail_numbers:
            return SMSResult(success=False, provider="fake", to_number=number, error="Invalid 'To' number")
        message_id = f"SM{len(self.sent)}"
        self._numbers_by_id[message_id] = number
        return SMSResult(
            success=True,
            message_id=message_id,
            provider="fake",
            to_number=number,
            sent_at=datetime.utcnow(),
        )

    async def get_message_status(self, message_id: str) -> Optional[str]:
        return self.statuses.get(self._numbers_by_id.get(message_id), "delivered")

    def to(self, number: str) -> List[str]:
        """Bodies of every message sent to a number."""
        number = format_phone(number)
        return [body for to, body in self.sent if to == number]


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        vapi_api_key="vapi-key",
        vapi_assistant_id="asst-1",
        vapi_phone_number_id="pn-1",
        twilio_account_sid="AC123",
        twilio_auth_token="token",
        twilio_from="+15550000000",
        twilio_to=OPERATOR_NUMBER,
        sms_provider="twilio",
        call_delay_ms=0,
        retry_delay_minutes=0,
        probe_settle_seconds=0,
        heartbeat_seconds=0.05,
        agent_name="Sarah",
        business_name="Acme Realty",
    )


@pytest.fixture
def fake_caller():
    return FakeCaller()


@pytest.fixture
def fake_sms():
    return FakeSMSProvider()


@pytest.fixture
def campaign(settings, fake_caller, fake_sms):
    from app.services.campaign_service import CampaignService
    return CampaignService(settings, caller=fake_caller, sms_provider=fake_sms)


@pytest.fixture
def mapping():
    return {"firstName": "First", "lastName": "Last", "phone": "Phone", "city": "City"}


@pytest.fixture
def rows():
    return [
        {"First": "Ann", "Last": "Lee", "Phone": "(555) 111-0001", "City": "Austin"},
        {"First": "Bob", "Last": "Ray", "Phone": "555-111-0002", "City": "Dallas"},
        {"First": "Cy", "Last": "Day", "Phone": "5551110003", "City": "Waco"},
    ]


async def wait_for_completion(campaign, job_id: str, timeout: float = 2.0):
    """Poll until a launched job reaches the complete status."""
    async def _poll():
        while True:
            job = campaign.get_job(job_id)
            if job is None or job.status == JobStatus.COMPLETE.value:
                return job
            await asyncio.sleep(0.01)
    return await asyncio.wait_for(_poll(), timeout=timeout)


def end_of_call_payload(call_id, ended_reason="customer-ended-call", summary="", started_at=None, ended_at=None):
    """Call provider end-of-call report webhook body."""
    message = {
        "type": "end-of-call-report",
        "endedReason": ended_reason,
        "analysis": {"summary": summary},
        "call": {"id": call_id, "status": "ended"},
    }
    if started_at:
        message["startedAt"] = started_at
    if ended_at:
        message["endedAt"] = ended_at
    return {"message": message}
