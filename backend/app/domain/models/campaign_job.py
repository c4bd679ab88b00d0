"""
Campaign Job Models
A job is one campaign run over a batch of leads in one channel
"""
import math
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    """Status of a campaign job. Only ever moves forward."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"


# Ordering used to keep JobStatus monotonic
JOB_STATUS_ORDER = {
    JobStatus.PENDING.value: 0,
    JobStatus.RUNNING.value: 1,
    JobStatus.COMPLETE.value: 2,
}


class JobMode(str, Enum):
    """Outreach channel"""
    CALL = "call"
    SMS = "sms"


class LeadStatus(str, Enum):
    """Dispatch state of a lead (distinct from its outcome)"""
    PENDING = "pending"
    CALLING = "calling"
    SENDING = "sending"
    INITIATED = "initiated"
    SENT = "sent"
    ERROR = "error"


class Outcome(str, Enum):
    """Classified result of a provider event or inbound reply"""
    HOT = "hot"
    WARM = "warm"
    COMPLETED = "completed"
    NO_ANSWER = "no-answer"
    NOT_INTERESTED = "not-interested"
    SENT = "sent"
    REPLIED = "replied"
    ERROR = "error"


class CamelModel(BaseModel):
    """Base model serializing to camelCase JSON"""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "use_enum_values": True,
    }

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON responses and stream frames."""
        return self.model_dump(mode="json", by_alias=True)


class Lead(CamelModel):
    """Identity fields of one contact"""
    first_name: str = ""
    last_name: str = ""
    name: str = ""
    phone: str = ""
    street_name: str = ""
    city: str = ""
    property_value: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any], mapping: Dict[str, Optional[str]]) -> "Lead":
        """Build a lead from an uploaded row using the client's column mapping."""
        def cell(field: str) -> str:
            column = mapping.get(field)
            if not column:
                return ""
            value = row.get(column)
            return str(value if value is not None else "").strip()

        first_name = cell("firstName")
        last_name = cell("lastName")
        return cls(
            first_name=first_name,
            last_name=last_name,
            name=" ".join(part for part in (first_name, last_name) if part),
            phone=cell("phone"),
            street_name=cell("streetName"),
            city=cell("city"),
            property_value=cell("propertyValue"),
        )


class LeadResult(Lead):
    """
    Per-lead result record. Its position in Job.results is the lead's
    identity within the job.
    """
    status: LeadStatus = LeadStatus.PENDING
    call_id: Optional[str] = None
    message_id: Optional[str] = None
    sent_at: Optional[datetime] = None
    error: Optional[str] = None

    # Set by resolvers once the provider reports
    outcome: Optional[Outcome] = None
    summary: Optional[str] = None
    ended_reason: Optional[str] = None
    duration: Optional[str] = None

    replied: bool = False
    last_reply: Optional[str] = None
    replied_at: Optional[datetime] = None

    retried: bool = False

    def to_lead(self) -> Lead:
        """Snapshot of the identity fields."""
        return Lead(**self.model_dump(include=set(Lead.model_fields)))

    @property
    def is_terminal(self) -> bool:
        """A lead is settled once it has an outcome or failed to dispatch."""
        return self.outcome is not None or self.status == LeadStatus.ERROR.value


class Job(CamelModel):
    """One campaign execution"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.PENDING
    mode: JobMode = JobMode.CALL
    total: int = 0
    results: List[LeadResult] = Field(default_factory=list)
    template: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def counts(self) -> Dict[str, int]:
        """Dispatch counts used by the completion summary."""
        counts = {"initiated": 0, "sent": 0, "errors": 0}
        for result in self.results:
            if result.status == LeadStatus.INITIATED.value:
                counts["initiated"] += 1
            elif result.status == LeadStatus.SENT.value:
                counts["sent"] += 1
            elif result.status == LeadStatus.ERROR.value:
                counts["errors"] += 1
        return counts

    def all_settled(self) -> bool:
        return bool(self.results) and all(r.is_terminal for r in self.results)


class CallIndexEntry(CamelModel):
    """Call identifier -> job/lead back-reference"""
    job_id: str
    lead_index: int
    lead: Lead
    retries: int = 0
    # Set in the same step the retry gate is checked so a duplicated
    # webhook cannot schedule a second retry for this call
    retry_scheduled: bool = False


class PhoneIndexEntry(CamelModel):
    """Phone number -> job/lead back-reference (SMS mode)"""
    job_id: str
    lead_index: int


class CallReport(BaseModel):
    """Provider end-of-call data used by classification and reporting"""
    call_id: Optional[str] = None
    status: Optional[str] = None
    ended_reason: Optional[str] = None
    summary: str = ""
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    customer_number: Optional[str] = None

    @classmethod
    def from_provider(cls, call: Dict[str, Any], message: Optional[Dict[str, Any]] = None) -> "CallReport":
        """
        Parse a provider call object.

        End-of-call webhooks may carry the analysis and ended reason on the
        enclosing message instead of the call; the message wins when set.
        """
        message = message or {}
        call = call or {}
        analysis = message.get("analysis") or call.get("analysis") or {}
        customer = call.get("customer") or {}
        return cls(
            call_id=call.get("id"),
            status=call.get("status"),
            ended_reason=message.get("endedReason") or call.get("endedReason"),
            summary=analysis.get("summary") or message.get("summary") or "",
            started_at=message.get("startedAt") or call.get("startedAt"),
            ended_at=message.get("endedAt") or call.get("endedAt"),
            customer_number=customer.get("number"),
        )

    @property
    def duration(self) -> Optional[str]:
        """Call length as "42s", or None when either timestamp is missing."""
        if not self.started_at or not self.ended_at:
            return None
        seconds = (self.ended_at - self.started_at).total_seconds()
        return f"{math.floor(seconds + 0.5)}s"
