"""
Provider Validation Module
Validates provider configurations on startup and before a job launches
"""
import logging
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass

from app.core.config import Settings

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when a job cannot start because a provider setting is missing."""

    def __init__(self, setting: str):
        self.setting = setting
        self.message = f"{setting} is not configured in .env"
        super().__init__(self.message)


@dataclass
class ValidationResult:
    """Result of a configuration validation check."""
    provider: str
    setting: str
    is_valid: bool
    message: str


class ProviderValidator:
    """
    Validates provider configurations.

    Call campaigns need the VAPI credentials; SMS campaigns and number
    validation probes need the active SMS provider's credentials and a
    sender number.
    """

    # Required settings by channel: (attribute, env var, description)
    CALL_SETTINGS = [
        ("vapi_api_key", "VAPI_API_KEY", "VAPI call provider"),
        ("vapi_assistant_id", "VAPI_ASSISTANT_ID", "VAPI call provider"),
        ("vapi_phone_number_id", "VAPI_PHONE_NUMBER_ID", "VAPI call provider"),
    ]

    SMS_SETTINGS = {
        "twilio": [
            ("twilio_account_sid", "TWILIO_ACCOUNT_SID", "Twilio SMS"),
            ("twilio_auth_token", "TWILIO_AUTH_TOKEN", "Twilio SMS"),
            ("twilio_from", "TWILIO_FROM", "Twilio SMS sender"),
        ],
        "vonage": [
            ("vonage_api_key", "VONAGE_API_KEY", "Vonage SMS"),
            ("vonage_api_secret", "VONAGE_API_SECRET", "Vonage SMS"),
            ("vonage_from_number", "VONAGE_FROM_NUMBER", "Vonage SMS sender"),
        ],
    }

    # Optional but recommended
    OPTIONAL_SETTINGS = [
        ("twilio_to", "TWILIO_TO", "Operator alert phone"),
        ("server_url", "SERVER_URL", "Webhook self-registration"),
        ("smtp_host", "SMTP_HOST", "Email report delivery"),
        ("report_email_to", "REPORT_EMAIL_TO", "Email report recipient"),
    ]

    def __init__(self, settings: Settings):
        self.settings = settings
        self.results: List[ValidationResult] = []

    def sms_settings(self) -> List[Tuple[str, str, str]]:
        return self.SMS_SETTINGS.get(self.settings.sms_provider.lower(), self.SMS_SETTINGS["twilio"])

    def missing_for_job(self, mode: str, validate_numbers: bool = False) -> Optional[str]:
        """
        Get the first missing setting for launching a job.

        Args:
            mode: "call" or "sms"
            validate_numbers: Whether the call job runs the probe pre-pass

        Returns:
            Env var name of the first missing setting, or None
        """
        required = []
        if mode == "call":
            required.extend(self.CALL_SETTINGS)
            if validate_numbers:
                required.extend(self.sms_settings())
        else:
            required.extend(self.sms_settings())

        for attr, env_var, _ in required:
            if not getattr(self.settings, attr):
                return env_var
        return None

    def require_for_job(self, mode: str, validate_numbers: bool = False) -> None:
        """Raise ConfigurationError if the job's channel is not configured."""
        missing = self.missing_for_job(mode, validate_numbers)
        if missing:
            raise ConfigurationError(missing)

    def validate_all(self) -> Tuple[bool, List[ValidationResult]]:
        """
        Validate every channel.

        Returns:
            Tuple of (all_valid, list of results)
        """
        self.results = []

        checks: Dict[str, List[Tuple[str, str, str]]] = {
            "call": self.CALL_SETTINGS,
            "sms": self.sms_settings(),
        }
        for provider, settings_list in checks.items():
            for attr, env_var, description in settings_list:
                if getattr(self.settings, attr):
                    self._add(provider, env_var, True, f"{description} configured")
                else:
                    self._add(provider, env_var, False, f"{description} requires {env_var} to be set")

        for attr, env_var, description in self.OPTIONAL_SETTINGS:
            if getattr(self.settings, attr):
                self._add("optional", env_var, True, f"{description} configured")
            else:
                self._add("optional", env_var, True, f"WARNING: {description} not configured (optional)")

        all_valid = all(r.is_valid for r in self.results)
        return all_valid, self.results

    def _add(self, provider: str, setting: str, is_valid: bool, message: str):
        self.results.append(ValidationResult(
            provider=provider,
            setting=setting,
            is_valid=is_valid,
            message=message
        ))

    def log_results(self):
        """Log all validation results."""
        errors = [r for r in self.results if not r.is_valid]
        warnings = [r for r in self.results if r.is_valid and "WARNING" in r.message]
        successes = [r for r in self.results if r.is_valid and "WARNING" not in r.message]

        if successes:
            logger.info("Provider configuration validated:")
            for r in successes:
                logger.info(f"  ✓ [{r.provider}] {r.message}")

        for r in warnings:
            logger.warning(f"  ⚠ [{r.provider}] {r.message}")

        for r in errors:
            logger.warning(f"  ✗ [{r.provider}] {r.message}")


def validate_providers_on_startup(settings: Settings) -> bool:
    """
    Log provider configuration at startup.

    Missing credentials are not fatal here: each job checks its own
    channel when it is launched.
    """
    validator = ProviderValidator(settings)
    all_valid, _ = validator.validate_all()
    validator.log_results()
    if all_valid:
        logger.info("All provider configurations validated successfully")
    return all_valid
