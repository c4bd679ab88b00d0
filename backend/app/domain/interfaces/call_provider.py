"""
Call Provider Interface
Abstract base class for outbound AI voice call providers
"""
from abc import ABC, abstractmethod
from typing import Optional

from app.domain.models.campaign_job import CallReport, Lead


class CallProviderError(Exception):
    """A call provider request failed; the message is safe to show per lead."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class CallProvider(ABC):
    """Abstract base class for call providers"""

    @abstractmethod
    async def start_call(self, lead: Lead) -> str:
        """
        Initiate an outbound call to a lead

        Args:
            lead: Lead whose details are passed to the assistant

        Returns:
            call_id: Provider call identifier

        Raises:
            CallProviderError: On timeout or provider rejection
        """
        pass

    @abstractmethod
    async def get_call(self, call_id: str) -> CallReport:
        """Fetch the current state of a call"""
        pass

    @abstractmethod
    async def register_webhook(self, url: str) -> None:
        """Point the provider's end-of-call reports at `url`"""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name"""
        pass
