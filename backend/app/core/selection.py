"""Candidate selection - RPC first, client-side query as fallback"""
import logging
from typing import Any, Dict, List, Optional

from backend.app.core.filters import CandidateFilter, apply_caps, group_by_platform
from backend.app.models import Candidate

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 20
FALLBACK_OVERFETCH = 3


def candidate_from_rpc_row(row: Dict[str, Any]) -> Candidate:
    """Flat row returned by the candidate function"""
    return Candidate(
        id=str(row["contact_id"]),
        email=row["email"],
        first_name=row.get("first_name"),
        last_name=row.get("last_name"),
        title=row.get("title"),
        phone=row.get("phone"),
        linkedin_url=row.get("linkedin_url"),
        company_id=str(row["company_id"]),
        company_name=row.get("company_name") or "",
        company_website=row.get("company_website"),
        company_description=row.get("company_description"),
        company_category_size=row.get("company_category_size"),
        company_pipedrive_id=row.get("company_pipedrive_id"),
        company_location=row.get("company_location"),
        company_industries=row.get("company_industries"),
        platform_id=str(row["platform_id"]),
        platform_name=row.get("platform_name") or "",
        instantly_campaign_id=row.get("instantly_campaign_id"),
        job_posting_title=row.get("job_posting_title"),
        job_posting_location=row.get("job_posting_location"),
    )


def candidate_from_rows(contact: Dict[str, Any], posting: Dict[str, Any]) -> Candidate:
    """Contact row (with joined company) plus the posting that routes it"""
    company = contact.get("companies") or {}
    platform = posting.get("platforms") or {}
    return Candidate(
        id=str(contact["id"]),
        email=contact["email"],
        first_name=contact.get("first_name"),
        last_name=contact.get("last_name"),
        title=contact.get("title"),
        phone=contact.get("phone"),
        linkedin_url=contact.get("linkedin_url"),
        company_id=str(company.get("id") or contact.get("company_id")),
        company_name=company.get("name") or "",
        company_website=company.get("website"),
        company_description=company.get("description"),
        company_category_size=company.get("category_size"),
        company_pipedrive_id=company.get("pipedrive_id"),
        company_location=company.get("location"),
        company_industries=company.get("industries"),
        platform_id=str(posting["platform_id"]),
        platform_name=platform.get("regio_platform") or "",
        instantly_campaign_id=platform.get("instantly_campaign_id"),
        job_posting_title=posting.get("title"),
        job_posting_location=posting.get("location"),
    )


class CandidateSelector:
    """Read-only: picks eligible contacts, never writes"""

    def __init__(self, contacts, excluded_source_id: Optional[str] = None):
        self.contacts = contacts
        self.excluded_source_id = excluded_source_id

    def _filter(self, platform_id: Optional[str]) -> CandidateFilter:
        return CandidateFilter(excluded_source_id=self.excluded_source_id, platform_id=platform_id)

    async def select(
        self,
        max_total: int,
        max_per_platform: int,
        platform_id: Optional[str] = None
    ) -> List[Candidate]:
        """Eligible candidates, capped per channel and in total. Empty on failure."""
        candidate_filter = self._filter(platform_id)
        try:
            try:
                rows = await self.contacts.select_candidates_rpc(
                    candidate_filter.rpc_params(max_total, max_per_platform)
                )
            except Exception as e:
                logger.warning("Candidate RPC failed, using fallback query: %s", e)
                return await self._select_fallback(candidate_filter, max_total, max_per_platform)

            candidates = []
            for row in rows:
                try:
                    candidate = candidate_from_rpc_row(row)
                except (KeyError, ValueError) as e:
                    logger.warning("Skipping malformed candidate row: %s", e)
                    continue
                if candidate_filter.matches(candidate):
                    candidates.append(candidate)

            selected = apply_caps(candidates, max_total, max_per_platform)
            logger.info("Selected %d candidates via RPC", len(selected))
            return selected
        except Exception as e:
            logger.error("Candidate selection failed: %s", e)
            return []

    async def _select_fallback(
        self,
        candidate_filter: CandidateFilter,
        max_total: int,
        max_per_platform: int
    ) -> List[Candidate]:
        contacts = await self.contacts.find_unassigned_contacts(
            list(candidate_filter.qualification_statuses),
            limit=max_total * FALLBACK_OVERFETCH,
        )

        candidates = []
        for contact in contacts:
            if not candidate_filter.contact_matches(contact):
                continue
            if not candidate_filter.company_matches(contact.get("companies")):
                continue

            company_id = (contact.get("companies") or {}).get("id") or contact.get("company_id")
            postings = await self.contacts.find_postings_for_company(company_id, candidate_filter.platform_id)
            posting = next((p for p in postings if candidate_filter.posting_matches(p)), None)
            if posting is None:
                continue

            candidates.append(candidate_from_rows(contact, posting))

        selected = apply_caps(candidates, max_total, max_per_platform)
        logger.info("Selected %d candidates via fallback query", len(selected))
        return selected

    async def preview(self, max_total: int, max_per_platform: int) -> Dict[str, Any]:
        """What a run would pick right now, without creating a batch"""
        candidates = await self.select(max_total, max_per_platform)
        platforms = [
            {
                "platform_id": platform_id,
                "platform_name": group[0].platform_name,
                "instantly_campaign_id": group[0].instantly_campaign_id,
                "count": len(group),
            }
            for platform_id, group in group_by_platform(candidates).items()
        ]
        return {
            "total_candidates": len(candidates),
            "platforms": platforms,
            "candidates": [
                {
                    "contact_id": c.id,
                    "email": c.email,
                    "name": c.full_name,
                    "company_name": c.company_name,
                    "platform_name": c.platform_name,
                }
                for c in candidates[:PREVIEW_LIMIT]
            ],
        }
