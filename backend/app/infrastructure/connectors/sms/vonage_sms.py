"""
Vonage SMS Provider
SMS implementation using Vonage SMS API.
"""
import asyncio
import logging
from typing import Optional, Dict, Any
from datetime import datetime

from vonage import Vonage, Auth
from vonage_sms import SmsMessage

from app.core.config import Settings
from .base import SMSNotConfiguredError, SMSProvider, SMSResult

logger = logging.getLogger(__name__)


class VonageSMSProvider(SMSProvider):
    """
    Vonage SMS provider using the Vonage SMS API (SDK v4.x).

    Uses Vonage credentials:
    - VONAGE_API_KEY
    - VONAGE_API_SECRET
    - VONAGE_FROM_NUMBER (SMS sender ID)

    The SMS API has no per-message status lookup, so delivery status is
    never reported and number validation keeps every lead.
    """

    def __init__(self, settings: Settings):
        self._sms = None

        self._api_key = settings.vonage_api_key
        self._api_secret = settings.vonage_api_secret
        self._default_from = settings.vonage_from_number

    @property
    def provider_name(self) -> str:
        return "vonage"

    def is_configured(self) -> bool:
        """Check if Vonage SMS credentials are configured."""
        return bool(self._api_key and self._api_secret)

    def _ensure_initialized(self) -> None:
        """Initialize Vonage client if not already done."""
        if self._sms is not None:
            return

        if not self.is_configured():
            raise SMSNotConfiguredError("VONAGE_API_KEY and VONAGE_API_SECRET are required")

        auth = Auth(api_key=self._api_key, api_secret=self._api_secret)
        self._sms = Vonage(auth=auth).sms
        logger.info("VonageSMSProvider initialized")

    def _send(self, to_number: str, from_number: str, message: str):
        sms_message = SmsMessage(
            to=to_number.lstrip("+"),
            from_=from_number,
            text=message
        )
        return self._sms.send(sms_message)

    async def send_sms(
        self,
        to_number: str,
        message: str,
        from_number: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> SMSResult:
        """
        Send an SMS via Vonage SMS API.

        Args:
            to_number: Destination phone number
            message: SMS content
            from_number: Sender ID (optional, uses default)
            metadata: Optional tracking metadata

        Returns:
            SMSResult with send status
        """
        to_number = self._normalize_number(to_number)
        from_number = from_number or self._default_from

        if not from_number:
            return SMSResult(
                success=False,
                provider=self.provider_name,
                to_number=to_number,
                error="No from_number configured. Set VONAGE_FROM_NUMBER environment variable."
            )

        logger.info(f"Sending SMS via Vonage: {from_number} -> {to_number[:6]}...")

        try:
            self._ensure_initialized()
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(None, self._send, to_number, from_number, message)

            if not getattr(response, "messages", None):
                return SMSResult(
                    success=False,
                    provider=self.provider_name,
                    to_number=to_number,
                    error="Unexpected response format from Vonage",
                    metadata=metadata
                )

            msg = response.messages[0]
            if str(getattr(msg, "status", "")) != "0":
                error_text = getattr(msg, "error_text", None) or "Unknown error"
                logger.error(f"Vonage SMS failed: {error_text}")
                return SMSResult(
                    success=False,
                    provider=self.provider_name,
                    to_number=to_number,
                    error=error_text,
                    metadata=metadata
                )

            message_id = getattr(msg, "message_id", None)
            logger.info(f"SMS sent successfully: {message_id}")
            return SMSResult(
                success=True,
                message_id=message_id,
                provider=self.provider_name,
                to_number=to_number,
                sent_at=datetime.utcnow(),
                metadata=metadata
            )

        except Exception as e:
            logger.error(f"Exception sending SMS via Vonage: {e}", exc_info=True)
            return SMSResult(
                success=False,
                provider=self.provider_name,
                to_number=to_number,
                error=str(e),
                metadata=metadata
            )
