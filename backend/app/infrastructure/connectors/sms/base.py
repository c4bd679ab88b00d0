"""
SMS Provider Base Classes
Abstract base class for SMS providers.
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from dataclasses import dataclass
from datetime import datetime
import logging

from app.utils.phone import format_phone

logger = logging.getLogger(__name__)


# Delivery states that mean the number cannot receive messages
FAILED_DELIVERY_STATUSES = ("failed", "undelivered")


class SMSNotConfiguredError(Exception):
    """Raised when an SMS provider is used without credentials."""
    pass


@dataclass
class SMSResult:
    """Result of an SMS send operation."""
    success: bool
    message_id: Optional[str] = None
    provider: str = ""
    to_number: str = ""
    error: Optional[str] = None
    sent_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None


class SMSProvider(ABC):
    """
    Abstract base class for SMS providers.

    All SMS providers must implement:
    - send_sms(): Send a single SMS message
    - is_configured(): Check if provider is properly configured

    get_message_status() is optional; providers that cannot report delivery
    state return None.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (e.g., 'vonage', 'twilio')."""
        pass

    @abstractmethod
    async def send_sms(
        self,
        to_number: str,
        message: str,
        from_number: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> SMSResult:
        """
        Send an SMS message.

        Args:
            to_number: Destination phone number (E.164 format preferred)
            message: Message content
            from_number: Optional sender ID (uses default if not provided)
            metadata: Optional metadata for tracking

        Returns:
            SMSResult with success status and message_id
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the provider has valid configuration."""
        pass

    async def get_message_status(self, message_id: str) -> Optional[str]:
        """
        Get the delivery status of a sent message.

        Returns:
            Provider status string (e.g. "delivered", "undelivered"),
            or None if the provider cannot report it
        """
        return None

    def _normalize_number(self, number: str) -> str:
        """Normalize a phone number to +1XXXXXXXXXX."""
        return format_phone(number)
