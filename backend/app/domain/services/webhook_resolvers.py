"""
Webhook Resolvers
State transitions for inbound provider callbacks.

Each resolver takes a parsed event and the orchestration state, applies
the state change in one synchronous step and returns the side effects
(alerts, retries, reports, stream frames) for the caller to run afterwards.
Nothing here performs I/O.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from app.domain.models.campaign_job import CallIndexEntry, CallReport, Lead, Outcome
from app.domain.models.conversation import MessageDirection
from app.domain.models.stream_events import ReplyEvent, StreamEvent, UpdateEvent
from app.domain.services.orchestration_state import OrchestrationState
from app.domain.services.outcome_classifier import classify_call_report, classify_reply

logger = logging.getLogger(__name__)


END_OF_CALL_REPORT = "end-of-call-report"


# =============================================================================
# Inbound events
# =============================================================================

@dataclass
class CallEndedEvent:
    """End-of-call report from the call provider"""
    call_id: str
    report: CallReport

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Optional["CallEndedEvent"]:
        """
        Parse a call provider webhook body.

        Returns None for any message other than an end-of-call report, or
        when the call id is missing.
        """
        message = (payload or {}).get("message")
        if not isinstance(message, dict) or message.get("type") != END_OF_CALL_REPORT:
            return None
        call = message.get("call") or {}
        call_id = call.get("id")
        if not call_id:
            return None
        return cls(call_id=call_id, report=CallReport.from_provider(call, message))


@dataclass
class SmsReplyEvent:
    """Inbound SMS from a lead (or anyone else)"""
    from_number: str
    body: str
    received_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Optional["SmsReplyEvent"]:
        """Accepts Twilio (From/Body) and Vonage (msisdn/text) field names."""
        payload = payload or {}
        from_number = payload.get("From") or payload.get("msisdn") or payload.get("from")
        if not from_number:
            return None
        body = payload.get("Body") or payload.get("text") or ""
        return cls(from_number=str(from_number), body=str(body).strip())


# =============================================================================
# Effects
# =============================================================================

@dataclass
class BroadcastEvent:
    job_id: str
    event: StreamEvent


@dataclass
class SendHotLeadAlert:
    call_id: str
    lead: Lead
    summary: str
    duration: Optional[str] = None


@dataclass
class SendReplyAlert:
    from_number: str
    body: str
    outcome: str
    lead_name: Optional[str] = None


@dataclass
class ScheduleRetry:
    call_id: str
    entry: CallIndexEntry


@dataclass
class TriggerReport:
    job_id: str


Effect = Union[BroadcastEvent, SendHotLeadAlert, SendReplyAlert, ScheduleRetry, TriggerReport]


@dataclass
class Resolution:
    """Outcome of one resolver step"""
    matched: bool = False
    outcome: Optional[str] = None
    effects: List[Effect] = field(default_factory=list)


# =============================================================================
# Resolvers
# =============================================================================

def resolve_call_ended(event: CallEndedEvent, state: OrchestrationState) -> Resolution:
    """
    Apply an end-of-call report to the lead it belongs to.

    Unknown call ids and calls whose job has been deleted resolve to no
    effects. The hot-lead alert guard, the retry gate and the report-once
    guard are each checked and set here without suspending.
    """
    entry = state.correlation.lookup_call(event.call_id)
    if entry is None:
        logger.info(f"Call-ended webhook for unknown call {event.call_id}, ignoring")
        return Resolution()

    report = event.report
    outcome = Outcome(classify_call_report(report)).value
    result = state.jobs.set_result(
        entry.job_id,
        entry.lead_index,
        {
            "outcome": outcome,
            "summary": report.summary,
            "ended_reason": report.ended_reason,
            "duration": report.duration,
        },
    )
    if result is None:
        logger.info(f"Job {entry.job_id} for call {event.call_id} no longer exists, ignoring")
        return Resolution()

    logger.info(
        f"Call {event.call_id} ended for {result.name or result.phone}: "
        f"{outcome} ({report.ended_reason})"
    )

    resolution = Resolution(matched=True, outcome=outcome)
    resolution.effects.append(
        BroadcastEvent(entry.job_id, UpdateEvent(index=entry.lead_index, result=result.to_dict()))
    )

    if outcome == Outcome.HOT.value and state.correlation.mark_alerted(event.call_id):
        resolution.effects.append(
            SendHotLeadAlert(
                call_id=event.call_id,
                lead=entry.lead,
                summary=report.summary,
                duration=report.duration,
            )
        )

    if outcome == Outcome.NO_ANSWER.value:
        claimed = state.correlation.claim_retry(event.call_id)
        if claimed is not None:
            resolution.effects.append(ScheduleRetry(call_id=event.call_id, entry=claimed))

    job = state.jobs.get(entry.job_id)
    if job is not None and job.all_settled() and state.jobs.mark_reported(entry.job_id):
        resolution.effects.append(TriggerReport(entry.job_id))

    return resolution


def resolve_sms_reply(event: SmsReplyEvent, state: OrchestrationState) -> Resolution:
    """
    Record an inbound SMS and correlate it to the lead last texted from
    that number. The operator alert is emitted whether or not a lead
    matched.
    """
    state.ledger.append(event.from_number, MessageDirection.INBOUND, event.body, event.received_at)
    outcome = Outcome(classify_reply(event.body)).value

    resolution = Resolution(outcome=outcome)
    lead_name = None

    entry = state.correlation.lookup_phone(event.from_number)
    if entry is not None:
        result = state.jobs.set_result(
            entry.job_id,
            entry.lead_index,
            {
                "replied": True,
                "last_reply": event.body,
                "replied_at": event.received_at,
                "outcome": outcome,
            },
        )
        if result is not None:
            resolution.matched = True
            lead_name = result.name or None
            resolution.effects.append(
                BroadcastEvent(
                    entry.job_id,
                    ReplyEvent(
                        index=entry.lead_index,
                        result=result.to_dict(),
                        body=event.body,
                        outcome=outcome,
                    ),
                )
            )

    if not resolution.matched:
        logger.info(f"SMS reply from {event.from_number} not matched to any job")
    else:
        logger.info(f"SMS reply from {event.from_number} classified {outcome}")

    resolution.effects.append(
        SendReplyAlert(
            from_number=event.from_number,
            body=event.body,
            outcome=outcome,
            lead_name=lead_name,
        )
    )
    return resolution
