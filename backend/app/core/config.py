"""
Configuration Management
Loads settings from environment variables and the .env file
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    environment: str = "development"
    log_level: str = "INFO"

    # API Settings
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = ["*"]

    # Call provider (VAPI)
    vapi_api_key: Optional[str] = None
    vapi_assistant_id: Optional[str] = None
    vapi_phone_number_id: Optional[str] = None
    vapi_base_url: str = "https://api.vapi.ai"
    call_timeout_seconds: float = 30.0

    # SMS provider
    sms_provider: str = "twilio"
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_from: Optional[str] = None
    vonage_api_key: Optional[str] = None
    vonage_api_secret: Optional[str] = None
    vonage_from_number: Optional[str] = None

    # Operator phone receiving alerts
    twilio_to: Optional[str] = None

    # Pacing
    call_delay_ms: int = 1500
    retry_delay_minutes: float = 45
    probe_settle_seconds: float = 12
    heartbeat_seconds: float = 15
    default_lead_limit: int = 80

    # Copy used in outreach and alerts
    agent_name: str = "Sarah"
    business_name: str = ""

    # Externally reachable base URL for webhook self-registration
    server_url: Optional[str] = None

    # Retention of finished jobs
    job_retention_hours: float = 6
    reap_interval_seconds: float = 300

    # Email report (SMTP)
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from_email: Optional[str] = None
    smtp_from_name: str = "Campaign Dialer"
    smtp_use_tls: bool = True
    report_email_to: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def call_delay_seconds(self) -> float:
        return self.call_delay_ms / 1000

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_minutes * 60

    @property
    def call_webhook_url(self) -> Optional[str]:
        """Public URL the call provider should post end-of-call reports to."""
        if not self.server_url:
            return None
        return f"{self.server_url.rstrip('/')}{self.api_prefix}/webhooks/call-ended"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
