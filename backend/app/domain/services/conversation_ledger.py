"""
Conversation Ledger
Append-only SMS history per phone number, shared across jobs.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from app.domain.models.conversation import ConversationMessage, MessageDirection
from app.utils.phone import format_phone

logger = logging.getLogger(__name__)


class ConversationLedger:
    """
    One thread per formatted phone number.

    Threads are never truncated; a number reused by a later job continues
    the same conversation.
    """

    def __init__(self):
        self._threads: Dict[str, List[ConversationMessage]] = {}

    def append(
        self,
        phone: str,
        direction: MessageDirection,
        body: str,
        timestamp: Optional[datetime] = None,
    ) -> ConversationMessage:
        key = format_phone(phone)
        message = ConversationMessage(
            direction=direction,
            body=body,
            timestamp=timestamp or datetime.utcnow(),
        )
        self._threads.setdefault(key, []).append(message)
        logger.debug(f"Ledger {direction} message for {key[:6]}... ({len(self._threads[key])} total)")
        return message

    def thread(self, phone: str) -> List[ConversationMessage]:
        """Get a copy of the thread for a number (empty if unknown)."""
        return list(self._threads.get(format_phone(phone), []))

    def __len__(self) -> int:
        return len(self._threads)
