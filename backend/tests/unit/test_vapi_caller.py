"""
Unit Tests for the VAPI Call Provider
Requests are served by an httpx.MockTransport; nothing leaves the process.
"""
import json

import httpx
import pytest

from app.domain.interfaces.call_provider import CallProviderError
from app.domain.models.campaign_job import Lead
from app.infrastructure.telephony.vapi_caller import VapiCaller


LEAD = Lead(
    first_name="Ann",
    name="Ann Lee",
    phone="(555) 111-0001",
    street_name="12 Elm St",
    property_value="$450,000",
)


def _caller(settings, handler):
    return VapiCaller(settings, transport=httpx.MockTransport(handler))


class TestVapiCaller:
    """Tests for VapiCaller"""

    def test_is_configured(self, settings):
        assert VapiCaller(settings).is_configured() is True
        assert VapiCaller(settings.model_copy(update={"vapi_api_key": None})).is_configured() is False

    def test_call_payload(self, settings):
        """Test the request body carries the lead as assistant variables"""
        payload = VapiCaller(settings).build_call_payload(LEAD)

        assert payload["assistantId"] == "asst-1"
        assert payload["phoneNumberId"] == "pn-1"
        assert payload["customer"] == {"name": "Ann Lee", "number": "+15551110001"}
        variables = payload["assistantOverrides"]["variableValues"]
        assert variables["first_name"] == "Ann"
        assert variables["property_address"] == "12 Elm St"
        assert variables["property_value"] == "$450,000"

    @pytest.mark.asyncio
    async def test_start_call(self, settings):
        """Test that a successful request returns the provider call id"""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"id": "call-abc", "status": "queued"})

        call_id = await _caller(settings, handler).start_call(LEAD)

        assert call_id == "call-abc"
        assert requests[0].method == "POST"
        assert requests[0].url.path == "/call"
        assert requests[0].headers["Authorization"] == "Bearer vapi-key"
        assert json.loads(requests[0].content)["customer"]["number"] == "+15551110001"

    @pytest.mark.asyncio
    async def test_provider_error_message(self, settings):
        """Test that the provider's error message is surfaced"""
        def handler(request):
            return httpx.Response(400, json={"message": ["customer.number must be a valid phone number"]})

        with pytest.raises(CallProviderError) as exc_info:
            await _caller(settings, handler).start_call(LEAD)

        assert exc_info.value.message == "customer.number must be a valid phone number"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_timeout(self, settings):
        """Test that timeouts become a readable error"""
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(CallProviderError, match="Request timed out after 30s"):
            await _caller(settings, handler).start_call(LEAD)

    @pytest.mark.asyncio
    async def test_missing_call_id(self, settings):
        def handler(request):
            return httpx.Response(201, json={})

        with pytest.raises(CallProviderError, match="No call id"):
            await _caller(settings, handler).start_call(LEAD)

    @pytest.mark.asyncio
    async def test_get_call(self, settings):
        """Test that fetched calls are parsed into reports"""
        def handler(request):
            assert request.url.path == "/call/call-abc"
            return httpx.Response(200, json={
                "id": "call-abc",
                "status": "ended",
                "endedReason": "customer-ended-call",
                "analysis": {"summary": "Wants to schedule a visit"},
                "startedAt": "2024-05-01T10:00:00Z",
                "endedAt": "2024-05-01T10:00:30Z",
            })

        report = await _caller(settings, handler).get_call("call-abc")

        assert report.status == "ended"
        assert report.summary == "Wants to schedule a visit"
        assert report.duration == "30s"

    @pytest.mark.asyncio
    async def test_register_webhook(self, settings):
        """Test that the assistant's server URL is patched"""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"id": "asst-1"})

        await _caller(settings, handler).register_webhook("https://dialer.example.com/api/v1/webhooks/call-ended")

        assert requests[0].method == "PATCH"
        assert requests[0].url.path == "/assistant/asst-1"
        assert json.loads(requests[0].content) == {
            "server": {"url": "https://dialer.example.com/api/v1/webhooks/call-ended"}
        }
