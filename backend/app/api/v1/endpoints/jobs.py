"""
Jobs API Endpoints
Launch campaign jobs, follow their progress and export results
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from pydantic import BaseModel, Field

from app.api.v1.dependencies import get_campaign, get_job_or_404
from app.core.validation import ConfigurationError
from app.domain.models.campaign_job import Job, JobMode
from app.services.campaign_service import CampaignService, LeadAdmissionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class ColumnMapping(BaseModel):
    """Uploaded column name for each lead field"""
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    phone: Optional[str] = None
    streetName: Optional[str] = None
    city: Optional[str] = None
    propertyValue: Optional[str] = None


class LaunchJobRequest(BaseModel):
    """Request body for launching a job"""
    rows: Optional[List[Dict[str, Any]]] = None
    mapping: Optional[ColumnMapping] = None
    limit: Optional[int] = Field(None, ge=1)
    mode: JobMode = JobMode.CALL
    validateNumbers: bool = False
    template: Optional[str] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("")
async def launch_job(
    request: LaunchJobRequest,
    campaign: CampaignService = Depends(get_campaign)
):
    """
    Launch a call or SMS job.

    Returns immediately with the job id; dispatch continues in the
    background and can be followed on the stream endpoint.
    """
    if not request.rows or request.mapping is None:
        return _error(400, "Missing rows or column mapping.")

    try:
        job = campaign.launch_job(
            rows=request.rows,
            mapping=request.mapping.model_dump(),
            limit=request.limit,
            mode=request.mode,
            validate_numbers=request.validateNumbers,
            template=request.template,
        )
    except ConfigurationError as e:
        return _error(500, e.message)
    except LeadAdmissionError as e:
        return _error(400, e.message)

    return {"jobId": job.id, "total": job.total, "mode": job.mode}


@router.get("/{job_id}")
async def get_job(job: Job = Depends(get_job_or_404)):
    """Full current job snapshot."""
    return job.to_dict()


@router.delete("/{job_id}")
async def delete_job(
    job_id: str,
    campaign: CampaignService = Depends(get_campaign)
):
    """Remove a job, stopping its dispatch and cancelling pending retries."""
    if not campaign.delete_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found")
    return {"deleted": True}


@router.get("/{job_id}/stream")
async def stream_job(
    job_id: str,
    campaign: CampaignService = Depends(get_campaign)
):
    """
    Server-sent event stream of job progress.

    Starts with an init frame carrying the job snapshot. Ends after the
    complete frame or when the client disconnects.
    """
    subscriber = campaign.subscribe(job_id)
    if subscriber is None:
        raise HTTPException(status_code=404, detail="Job not found")

    return StreamingResponse(
        campaign.stream(subscriber),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/{job_id}/results")
async def get_results(
    job_id: str,
    campaign: CampaignService = Depends(get_campaign)
):
    """Reconciled results, polling the call provider for unreported calls."""
    results = await campaign.results(job_id)
    if results is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return results


@router.get("/{job_id}/results.csv")
async def export_results_csv(
    job_id: str,
    campaign: CampaignService = Depends(get_campaign)
):
    """Reconciled results as a CSV download."""
    try:
        csv = await campaign.export_csv(job_id)
    except Exception as e:
        logger.error(f"CSV export failed for job {job_id}: {e}", exc_info=True)
        return PlainTextResponse(f"Error generating CSV: {e}", status_code=500)

    if csv is None:
        return PlainTextResponse("Job not found", status_code=404)

    return Response(
        content=csv,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="call-results-{job_id[:8]}.csv"'},
    )


@router.get("/{job_id}/conversations")
async def get_conversations(
    job_id: str,
    campaign: CampaignService = Depends(get_campaign)
):
    """Each lead's result with its SMS conversation thread."""
    conversations = campaign.conversations(job_id)
    if conversations is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"jobId": job_id, "conversations": conversations}
