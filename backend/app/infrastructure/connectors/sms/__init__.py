"""
SMS Connectors Package
Provides SMS sending capabilities via various providers.
"""
from app.core.config import Settings

from .base import FAILED_DELIVERY_STATUSES, SMSNotConfiguredError, SMSProvider, SMSResult
from .twilio_sms import TwilioSMSProvider
from .vonage_sms import VonageSMSProvider


def get_sms_provider(settings: Settings) -> SMSProvider:
    """Create the SMS provider selected by SMS_PROVIDER."""
    if settings.sms_provider.lower() == "vonage":
        return VonageSMSProvider(settings)
    return TwilioSMSProvider(settings)


__all__ = [
    "FAILED_DELIVERY_STATUSES",
    "SMSNotConfiguredError",
    "SMSProvider",
    "SMSResult",
    "TwilioSMSProvider",
    "VonageSMSProvider",
    "get_sms_provider",
]
