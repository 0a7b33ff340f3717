"""External service shapes - CRM, outreach platform and suppression store"""
from typing import Optional
from pydantic import BaseModel


class CrmOrganization(BaseModel):
    """Pipedrive organization search hit"""
    id: int
    name: Optional[str] = None


class EnrollmentResult(BaseModel):
    """Outcome of adding a lead to an Instantly campaign"""
    success: bool
    lead_id: Optional[str] = None
    error: Optional[str] = None
    skipped_as_duplicate: bool = False


class SuppressionEntry(BaseModel):
    """Active row of the internal blocklist"""
    id: str
    value: str
    block_type: str
    reason: Optional[str] = None
