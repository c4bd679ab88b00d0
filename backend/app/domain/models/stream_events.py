"""
Job Stream Event Schemas
Frames pushed to job stream subscribers

Every frame is serialized as one server-sent event: ``data: <json>\\n\\n``.
"""
import json
from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel


class EventType(str, Enum):
    """All supported stream event types"""
    INIT = "init"
    UPDATE = "update"
    REPLY = "reply"
    PROBE = "probe"
    PROBE_DONE = "probe_done"
    COMPLETE = "complete"


HEARTBEAT_FRAME = ": ping\n\n"


class StreamEvent(BaseModel):
    """Base class for stream frames"""
    type: EventType

    model_config = {"use_enum_values": True}

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_frame(self) -> str:
        return f"data: {json.dumps(self.to_payload())}\n\n"


class Progress(BaseModel):
    current: int
    total: int


class InitEvent(StreamEvent):
    """Full job snapshot sent first to every new subscriber"""
    type: Literal[EventType.INIT] = EventType.INIT
    job: Dict[str, Any]


class UpdateEvent(StreamEvent):
    """A single lead result changed"""
    type: Literal[EventType.UPDATE] = EventType.UPDATE
    index: int
    result: Dict[str, Any]
    progress: Optional[Progress] = None


class ReplyEvent(StreamEvent):
    """An inbound SMS was correlated to a lead"""
    type: Literal[EventType.REPLY] = EventType.REPLY
    index: int
    result: Dict[str, Any]
    body: str
    outcome: str


class ProbeEvent(StreamEvent):
    """Delivery result of one number-validation probe"""
    type: Literal[EventType.PROBE] = EventType.PROBE
    index: int
    phone: str
    status: str
    kept: bool


class ProbeDoneEvent(StreamEvent):
    """Number validation finished; carries the admitted job snapshot"""
    type: Literal[EventType.PROBE_DONE] = EventType.PROBE_DONE
    checked: int
    dropped: int
    remaining: int
    job: Optional[Dict[str, Any]] = None


class CompleteEvent(StreamEvent):
    """Terminal frame; the stream closes after it"""
    type: Literal[EventType.COMPLETE] = EventType.COMPLETE
    total: Optional[int] = None
    initiated: Optional[int] = None
    sent: Optional[int] = None
    errors: Optional[int] = None
