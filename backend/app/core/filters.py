"""Candidate selection rules.

The same CandidateFilter feeds the stored-procedure parameters and filters
rows client-side in the fallback path, so both paths select the same contacts.
"""
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Tuple
from pydantic import BaseModel

from backend.app.models import Candidate

EXCLUDED_EMAIL_FRAGMENTS = ("nationalevacaturebank", "nationale.vacaturebank")
QUALIFICATION_STATUSES = ("qualified", "pending")
PROSPECT_STATUS = "Prospect"
TOO_LARGE_SIZE = "Groot"


def is_plausible_email(email: Optional[str], excluded: Iterable[str] = EXCLUDED_EMAIL_FRAGMENTS) -> bool:
    """Cheap syntactic check, not RFC validation"""
    value = (email or "").strip().lower()
    if len(value) <= 5:
        return False
    if "@" not in value or "." not in value:
        return False
    if value.count("@") > 1:
        return False

    local, domain = value.split("@")
    if not local or "." not in domain:
        return False

    return not any(fragment in value for fragment in excluded)


class CandidateFilter(BaseModel):
    """Static eligibility predicates evaluated at selection time"""
    qualification_statuses: Tuple[str, ...] = QUALIFICATION_STATUSES
    company_status: str = PROSPECT_STATUS
    excluded_size: str = TOO_LARGE_SIZE
    excluded_email_fragments: Tuple[str, ...] = EXCLUDED_EMAIL_FRAGMENTS
    excluded_source_id: Optional[str] = None
    platform_id: Optional[str] = None

    model_config = {"frozen": True}

    def rpc_params(self, max_total: int, max_per_platform: int) -> Dict[str, Any]:
        """Parameters for the precomputed candidate query"""
        return {
            "p_max_total": max_total,
            "p_max_per_platform": max_per_platform,
            "p_qualification_statuses": list(self.qualification_statuses),
            "p_company_status": self.company_status,
            "p_excluded_size": self.excluded_size,
            "p_excluded_email_fragments": list(self.excluded_email_fragments),
            "p_excluded_source_id": self.excluded_source_id,
            "p_platform_id": self.platform_id,
        }

    def contact_matches(self, contact: Dict[str, Any]) -> bool:
        if contact.get("qualification_status") not in self.qualification_statuses:
            return False
        if contact.get("campaign_id") or contact.get("campaign_name"):
            return False
        return is_plausible_email(contact.get("email"), self.excluded_email_fragments)

    def company_matches(self, company: Optional[Dict[str, Any]]) -> bool:
        if not company:
            return False
        if company.get("pipedrive_id"):
            return False
        if company.get("category_size") == self.excluded_size:
            return False
        return company.get("status") == self.company_status

    def posting_matches(self, posting: Dict[str, Any]) -> bool:
        """Job posting routes the company to a channel with a campaign"""
        platform = posting.get("platforms") or {}
        if not posting.get("platform_id") or not platform.get("instantly_campaign_id"):
            return False
        if self.excluded_source_id and posting.get("source_id") == self.excluded_source_id:
            return False
        if self.platform_id and str(posting.get("platform_id")) != str(self.platform_id):
            return False
        return True

    def matches(self, candidate: Candidate) -> bool:
        """Re-check of an already denormalized candidate row"""
        if not is_plausible_email(candidate.email, self.excluded_email_fragments):
            return False
        if candidate.company_pipedrive_id:
            return False
        if candidate.company_category_size == self.excluded_size:
            return False
        if not candidate.instantly_campaign_id:
            return False
        if self.platform_id and candidate.platform_id != str(self.platform_id):
            return False
        return True


def apply_caps(candidates: Iterable[Candidate], max_total: int, max_per_platform: int) -> List[Candidate]:
    """Per-channel cap, then round-robin across channels up to max_total.

    A contact appearing under several channels is kept only for the first one.
    """
    seen = set()
    per_platform: "OrderedDict[str, List[Candidate]]" = OrderedDict()

    for candidate in candidates:
        if candidate.id in seen:
            continue
        bucket = per_platform.setdefault(candidate.platform_id, [])
        if len(bucket) >= max_per_platform:
            continue
        seen.add(candidate.id)
        bucket.append(candidate)

    selected: List[Candidate] = []
    round_index = 0
    while len(selected) < max_total:
        added = False
        for bucket in per_platform.values():
            if round_index < len(bucket):
                selected.append(bucket[round_index])
                added = True
                if len(selected) >= max_total:
                    break
        if not added:
            break
        round_index += 1

    return selected


def group_by_platform(candidates: Iterable[Candidate]) -> "OrderedDict[str, List[Candidate]]":
    """Candidates per channel id, in selection order"""
    groups: "OrderedDict[str, List[Candidate]]" = OrderedDict()
    for candidate in candidates:
        groups.setdefault(candidate.platform_id, []).append(candidate)
    return groups
