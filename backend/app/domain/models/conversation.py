"""
Conversation Domain Models
"""
from datetime import datetime
from enum import Enum

from pydantic import Field

from app.domain.models.campaign_job import CamelModel


class MessageDirection(str, Enum):
    """Direction of an SMS relative to us"""
    OUTBOUND = "outbound"
    INBOUND = "inbound"


class ConversationMessage(CamelModel):
    """Single message in a phone number's thread"""
    direction: MessageDirection
    body: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
