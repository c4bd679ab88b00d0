"""
Twilio SMS Provider
SMS implementation using the Twilio Messaging API.
"""
import asyncio
import logging
from typing import Optional, Dict, Any
from datetime import datetime

from twilio.rest import Client

from app.core.config import Settings
from .base import SMSNotConfiguredError, SMSProvider, SMSResult

logger = logging.getLogger(__name__)


class TwilioSMSProvider(SMSProvider):
    """
    Twilio SMS provider.

    Uses Twilio credentials:
    - TWILIO_ACCOUNT_SID
    - TWILIO_AUTH_TOKEN
    - TWILIO_FROM (sender number)

    The Twilio client is synchronous; calls run in the default executor.
    """

    def __init__(self, settings: Settings):
        self._client: Optional[Client] = None

        self._account_sid = settings.twilio_account_sid
        self._auth_token = settings.twilio_auth_token
        self._default_from = settings.twilio_from

    @property
    def provider_name(self) -> str:
        return "twilio"

    def is_configured(self) -> bool:
        return bool(self._account_sid and self._auth_token)

    def _get_client(self) -> Client:
        if self._client is None:
            if not self.is_configured():
                raise SMSNotConfiguredError("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN are required")
            self._client = Client(self._account_sid, self._auth_token)
            logger.info("TwilioSMSProvider initialized")
        return self._client

    async def send_sms(
        self,
        to_number: str,
        message: str,
        from_number: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> SMSResult:
        """
        Send an SMS via Twilio.

        Returns:
            SMSResult with the message SID on success
        """
        to_number = self._normalize_number(to_number)
        from_number = from_number or self._default_from

        if not from_number:
            return SMSResult(
                success=False,
                provider=self.provider_name,
                to_number=to_number,
                error="No from_number configured. Set TWILIO_FROM environment variable."
            )

        logger.info(f"Sending SMS via Twilio: {from_number} -> {to_number[:6]}...")

        try:
            client = self._get_client()
            loop = asyncio.get_running_loop()
            sent = await loop.run_in_executor(
                None,
                lambda: client.messages.create(from_=from_number, to=to_number, body=message)
            )
            logger.info(f"SMS sent successfully: {sent.sid}")
            return SMSResult(
                success=True,
                message_id=sent.sid,
                provider=self.provider_name,
                to_number=to_number,
                sent_at=datetime.utcnow(),
                metadata=metadata
            )
        except Exception as e:
            logger.error(f"Exception sending SMS via Twilio: {e}")
            return SMSResult(
                success=False,
                provider=self.provider_name,
                to_number=to_number,
                error=str(e),
                metadata=metadata
            )

    async def get_message_status(self, message_id: str) -> Optional[str]:
        """
        Fetch a message's delivery status.

        Raises:
            Exception: Whatever the Twilio client raises; callers decide
            how to treat an unknown status
        """
        client = self._get_client()
        loop = asyncio.get_running_loop()
        fetched = await loop.run_in_executor(None, lambda: client.messages(message_id).fetch())
        return fetched.status
