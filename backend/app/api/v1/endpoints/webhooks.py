"""
Webhooks API Endpoints
Handles incoming webhooks from the call and SMS providers

Both endpoints acknowledge immediately; resolution, alerts and retries
run as background tasks after the response is sent.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import Response
from twilio.twiml.messaging_response import MessagingResponse

from app.api.v1.dependencies import get_campaign
from app.services.campaign_service import CampaignService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _read_payload(request: Request) -> Dict[str, Any]:
    """Parse a JSON or form-encoded webhook body; anything else is empty."""
    content_type = request.headers.get("content-type", "")
    try:
        if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
            form = await request.form()
            return dict(form)
        payload = await request.json()
    except Exception as e:
        logger.warning(f"Unparseable webhook body ({content_type}): {e}")
        return {}
    return payload if isinstance(payload, dict) else {}


async def _process_call_ended(campaign: CampaignService, payload: Dict[str, Any]) -> None:
    try:
        await campaign.handle_call_ended(payload)
    except Exception as e:
        logger.error(f"Error processing call-ended webhook: {e}", exc_info=True)


async def _process_sms_reply(campaign: CampaignService, payload: Dict[str, Any]) -> None:
    try:
        await campaign.handle_sms_reply(payload)
    except Exception as e:
        logger.error(f"Error processing SMS reply webhook: {e}", exc_info=True)


@router.post("/call-ended")
async def call_ended(
    request: Request,
    background_tasks: BackgroundTasks,
    campaign: CampaignService = Depends(get_campaign)
):
    """
    Handle the call provider's server messages.

    Always returns 200. Only end-of-call reports are processed.
    """
    payload = await _read_payload(request)
    message = payload.get("message")
    if isinstance(message, dict):
        logger.debug(f"Call webhook received: {message.get('type')}")
    background_tasks.add_task(_process_call_ended, campaign, payload)
    return {"received": True}


@router.post("/sms-reply")
async def sms_reply(
    request: Request,
    background_tasks: BackgroundTasks,
    campaign: CampaignService = Depends(get_campaign)
):
    """
    Handle an inbound SMS.

    Responds with an empty TwiML document so the provider sends nothing
    back to the lead.
    """
    payload = await _read_payload(request)
    background_tasks.add_task(_process_sms_reply, campaign, payload)
    return Response(content=str(MessagingResponse()), media_type="application/xml")
