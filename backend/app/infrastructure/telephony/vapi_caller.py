"""
VAPI Call Origination Service
Handles outbound AI assistant calls via the VAPI REST API
"""
import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import Settings
from app.domain.interfaces.call_provider import CallProvider, CallProviderError
from app.domain.models.campaign_job import CallReport, Lead
from app.utils.phone import format_phone

logger = logging.getLogger(__name__)


def _provider_message(response: httpx.Response) -> Optional[str]:
    """Pull the human-readable error out of a provider error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if not isinstance(body, dict):
        return None
    message = body.get("message") or body.get("error")
    if isinstance(message, list):
        message = "; ".join(str(m) for m in message)
    return str(message) if message else None


class VapiCaller(CallProvider):
    """
    VAPI client for outbound call origination.

    Responsibilities:
    - Start assistant calls with per-lead variable values
    - Fetch call state for on-demand reconciliation
    - Register the end-of-call webhook on the assistant

    Requirements:
    - VAPI_API_KEY, VAPI_ASSISTANT_ID and VAPI_PHONE_NUMBER_ID
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._api_key = settings.vapi_api_key
        self._assistant_id = settings.vapi_assistant_id
        self._phone_number_id = settings.vapi_phone_number_id
        self._base_url = settings.vapi_base_url.rstrip("/")
        self._timeout = settings.call_timeout_seconds
        self._transport = transport

    @property
    def name(self) -> str:
        return "vapi"

    def is_configured(self) -> bool:
        return bool(self._api_key and self._assistant_id and self._phone_number_id)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    def build_call_payload(self, lead: Lead) -> Dict[str, Any]:
        """Request body for one outbound call."""
        phone = format_phone(lead.phone)
        address = lead.street_name or lead.city
        return {
            "assistantId": self._assistant_id,
            "assistantOverrides": {
                "variableValues": {
                    "first_name": lead.first_name or lead.name or "there",
                    "street_name": address,
                    "property_address": address,
                    "property_value": lead.property_value,
                    "phone_number": phone,
                }
            },
            "customer": {"name": lead.name, "number": phone},
            "phoneNumberId": self._phone_number_id,
        }

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            raise CallProviderError(f"Request timed out after {self._timeout:g}s")
        except httpx.HTTPError as e:
            raise CallProviderError(str(e) or "Unknown error")

        if response.is_error:
            message = _provider_message(response) or f"HTTP {response.status_code}"
            raise CallProviderError(message, status_code=response.status_code)

        try:
            return response.json()
        except ValueError:
            return {}

    async def start_call(self, lead: Lead) -> str:
        """
        Initiate an outbound call.

        Args:
            lead: Lead to call

        Returns:
            Provider call id
        """
        payload = self.build_call_payload(lead)
        logger.info(f"Initiating call to {payload['customer']['number']}")

        data = await self._request("POST", "/call", json=payload)
        call_id = data.get("id")
        if not call_id:
            raise CallProviderError("No call id returned from provider")

        logger.info(f"Call initiated: id={call_id}")
        return call_id

    async def get_call(self, call_id: str) -> CallReport:
        data = await self._request("GET", f"/call/{call_id}")
        return CallReport.from_provider(data)

    async def register_webhook(self, url: str) -> None:
        await self._request(
            "PATCH",
            f"/assistant/{self._assistant_id}",
            json={"server": {"url": url}},
        )
        logger.info(f"Call webhook registered: {url}")
