"""Domain models"""

# Campaign job models
from .campaign_job import (
    JobStatus,
    JobMode,
    LeadStatus,
    Outcome,
    Lead,
    LeadResult,
    Job,
    CallIndexEntry,
    PhoneIndexEntry,
    CallReport,
)

# Conversation models
from .conversation import (
    MessageDirection,
    ConversationMessage,
)

# Stream events
from .stream_events import (
    EventType,
    StreamEvent,
    InitEvent,
    UpdateEvent,
    ReplyEvent,
    ProbeEvent,
    ProbeDoneEvent,
    CompleteEvent,
    HEARTBEAT_FRAME,
)

__all__ = [
    "JobStatus",
    "JobMode",
    "LeadStatus",
    "Outcome",
    "Lead",
    "LeadResult",
    "Job",
    "CallIndexEntry",
    "PhoneIndexEntry",
    "CallReport",
    "MessageDirection",
    "ConversationMessage",
    "EventType",
    "StreamEvent",
    "InitEvent",
    "UpdateEvent",
    "ReplyEvent",
    "ProbeEvent",
    "ProbeDoneEvent",
    "CompleteEvent",
    "HEARTBEAT_FRAME",
]
