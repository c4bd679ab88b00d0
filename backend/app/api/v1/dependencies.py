"""
API Dependencies
Shared dependencies for endpoint handlers
"""
from fastapi import Depends, HTTPException, status

from app.domain.models.campaign_job import Job
from app.services.campaign_service import CampaignService, get_campaign_service


def get_campaign() -> CampaignService:
    """Campaign service dependency (overridable in tests)."""
    return get_campaign_service()


def get_job_or_404(
    job_id: str,
    campaign: CampaignService = Depends(get_campaign)
) -> Job:
    """
    Resolve a job id path parameter.

    Raises:
        HTTPException: 404 if the job does not exist
    """
    job = campaign.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job
