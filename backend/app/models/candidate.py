"""Candidate models - contact snapshots and AI enrichment payloads"""
from typing import Optional, List, Any
from pydantic import BaseModel, field_validator

PERSONALIZATION_MAX_WORDS = 100
FALLBACK_CATEGORY = "overig"


class Candidate(BaseModel):
    """Contact selected for campaign assignment, denormalized at selection time"""
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    title: Optional[str] = None
    phone: Optional[str] = None
    linkedin_url: Optional[str] = None

    company_id: str
    company_name: str
    company_website: Optional[str] = None
    company_description: Optional[str] = None
    company_category_size: Optional[str] = None
    company_pipedrive_id: Optional[str] = None
    company_location: Optional[str] = None
    company_industries: Optional[List[str]] = None

    # Channel (regional platform) and its destination campaign
    platform_id: str
    platform_name: str
    instantly_campaign_id: Optional[str] = None

    job_posting_title: Optional[str] = None
    job_posting_location: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("company_industries", mode="before")
    @classmethod
    def _industries_as_list(cls, value: Any) -> Optional[List[str]]:
        if value is None or isinstance(value, list):
            return value
        return [part.strip() for part in str(value).split(",") if part.strip()]

    @property
    def full_name(self) -> Optional[str]:
        name = " ".join(p for p in (self.first_name, self.last_name) if p)
        return name or None

    @property
    def email_domain(self) -> str:
        return self.email.rsplit("@", 1)[-1].strip().lower()


class EnrichmentPayload(BaseModel):
    """Structured output of the personalization prompt.

    Every string field the outreach payload relies on is default-filled, so
    callers never see a missing value even when the model omits or nulls it.
    """
    normalized_title: Optional[str] = None
    normalized_company: str = ""
    company_description: str = ""
    category: str = FALLBACK_CATEGORY
    custom_category: Optional[str] = None
    confidence: Optional[float] = None
    sector: str = FALLBACK_CATEGORY
    region: str = ""
    region_insight: Optional[str] = None
    pain_point: Optional[str] = None
    similar_companies: str = ""
    similar_companies_type: Optional[str] = None
    personalization: str = ""
    reasoning: Optional[str] = None

    @field_validator("similar_companies", mode="before")
    @classmethod
    def _join_similar(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return ", ".join(str(v).strip() for v in value if str(v).strip())
        return str(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _lenient_confidence(cls, value: Any) -> Optional[float]:
        if value is None or value == "":
            return None
        try:
            return float(str(value).rstrip("%"))
        except ValueError:
            return None

    @field_validator("category", "sector", mode="before")
    @classmethod
    def _fallback_category(cls, value: Any) -> str:
        text = str(value).strip() if value is not None else ""
        return text or FALLBACK_CATEGORY

    @field_validator("normalized_company", "company_description", "region", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("personalization", mode="before")
    @classmethod
    def _bounded_personalization(cls, value: Any) -> str:
        if value is None:
            return ""
        words = str(value).split()
        if len(words) > PERSONALIZATION_MAX_WORDS:
            words = words[:PERSONALIZATION_MAX_WORDS]
        return " ".join(words)
