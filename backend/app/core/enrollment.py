"""Outreach enrollment - turns a candidate + enrichment into an Instantly lead"""
import logging
from typing import Any, Dict, Optional

from backend.app.config import get_settings
from backend.app.integrations.instantly import InstantlyClient
from backend.app.models import Candidate, EnrichmentPayload, EnrollmentResult

logger = logging.getLogger(__name__)


def build_lead_payload(
    candidate: Candidate,
    payload: EnrichmentPayload,
    assigned_to: Optional[str] = None
) -> Dict[str, Any]:
    """Instantly lead body; duplicates are skipped by Instantly itself"""
    lead: Dict[str, Any] = {
        "campaign": candidate.instantly_campaign_id,
        "email": candidate.email,
        "first_name": candidate.first_name,
        "last_name": candidate.last_name,
        "company_name": candidate.company_name,
        "website": candidate.company_website,
        "phone": candidate.phone,
        "personalization": payload.personalization,
        "skip_if_in_workspace": True,
        "skip_if_in_campaign": True,
        "skip_if_in_list": True,
        "custom_variables": {
            "company_sector": payload.sector.lower(),
            "normalized_company_name": payload.normalized_company,
            "similar_companies": payload.similar_companies,
            "job_category": payload.category.lower(),
            "custom_region": payload.region,
            "normalized_title": payload.normalized_title or "",
            "company_description": payload.company_description,
            "linkedin": candidate.linkedin_url or "",
            "company_size": candidate.company_category_size or "",
            "job_title": candidate.title or "",
        },
    }
    if assigned_to:
        lead["assigned_to"] = assigned_to

    return {k: v for k, v in lead.items() if v is not None}


class EnrollmentClient:
    """Single attempt per call; the orchestrator decides what a failure means"""

    def __init__(self, outreach: Optional[InstantlyClient] = None, assigned_to: Optional[str] = None):
        self.outreach = outreach or InstantlyClient()
        self.assigned_to = assigned_to if assigned_to is not None else get_settings().instantly_assigned_to

    async def enroll(self, candidate: Candidate, payload: EnrichmentPayload) -> EnrollmentResult:
        lead = build_lead_payload(candidate, payload, self.assigned_to)
        try:
            return await self.outreach.create_lead(lead)
        except Exception as e:
            logger.error("Error adding %s to Instantly: %s", candidate.email, e)
            return EnrollmentResult(success=False, error=str(e) or type(e).__name__)
