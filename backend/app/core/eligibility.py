"""Eligibility gate - cheap checks that run before the AI call.

Order: campaign target, CRM customer protection, suppression lists.
The first failing check decides the skip status.
"""
import logging
from typing import Optional
from pydantic import BaseModel

from backend.app.config import get_settings
from backend.app.models import Candidate, ResultStatus

logger = logging.getLogger(__name__)


class GateVerdict(BaseModel):
    """status is None when the candidate may continue"""
    status: Optional[ResultStatus] = None
    reason: Optional[str] = None
    crm_org_id: Optional[int] = None
    crm_is_customer: bool = False

    @property
    def passed(self) -> bool:
        return self.status is None


class EligibilityGate:
    """CRM and suppression lookups fail open unless fail_closed is set"""

    def __init__(
        self,
        crm,
        suppression_store,
        outreach,
        contacts,
        customer_status_id: Optional[int] = None,
        fail_closed: Optional[bool] = None,
    ):
        settings = get_settings()
        self.crm = crm
        self.suppression_store = suppression_store
        self.outreach = outreach
        self.contacts = contacts
        self.customer_status_id = customer_status_id or settings.pipedrive_customer_status_id
        self.fail_closed = settings.gate_fail_closed if fail_closed is None else fail_closed

    async def check(self, candidate: Candidate) -> GateVerdict:
        if not candidate.instantly_campaign_id:
            return GateVerdict(
                status=ResultStatus.SKIPPED_NO_CAMPAIGN,
                reason="No Instantly campaign ID configured for platform",
            )

        crm_verdict = await self.check_crm(candidate)
        if not crm_verdict.passed:
            return crm_verdict

        suppression_verdict = await self.check_suppression(candidate)
        if not suppression_verdict.passed:
            suppression_verdict.crm_org_id = crm_verdict.crm_org_id
            return suppression_verdict

        return crm_verdict

    async def check_crm(self, candidate: Candidate) -> GateVerdict:
        """Search Pipedrive by company name; "Klant" organizations are protected"""
        try:
            organizations = await self.crm.search_organization_by_name(candidate.company_name)
            if not organizations:
                return GateVerdict()
            org_id = organizations[0].id
            status = await self.crm.get_organization_status(org_id)
        except Exception as e:
            logger.warning("Pipedrive check failed for %r: %s", candidate.company_name, e)
            if self.fail_closed:
                return GateVerdict(
                    status=ResultStatus.SKIPPED_CUSTOMER,
                    reason=f"Pipedrive lookup failed: {e}",
                )
            return GateVerdict()

        try:
            await self.contacts.link_company_to_crm(candidate.company_id, org_id)
            logger.info("Updated company %r with Pipedrive ID %s", candidate.company_name, org_id)
        except Exception as e:
            logger.warning("Could not store Pipedrive ID %s on company %s: %s", org_id, candidate.company_id, e)

        is_customer = status == self.customer_status_id
        if is_customer:
            logger.info("Skipping %s - company is Klant in Pipedrive", candidate.email)
            return GateVerdict(
                status=ResultStatus.SKIPPED_CUSTOMER,
                reason='Company has "Klant" status in Pipedrive',
                crm_org_id=org_id,
                crm_is_customer=True,
            )
        return GateVerdict(crm_org_id=org_id)

    async def check_suppression(self, candidate: Candidate) -> GateVerdict:
        """Internal blocklist (email, then domain), then the Instantly blocklist"""
        email = candidate.email.strip().lower()

        for value, block_type in ((email, "email"), (candidate.email_domain, "domain")):
            try:
                entry = await self.suppression_store.find_active_entry(value, block_type)
            except Exception as e:
                logger.warning("Blocklist lookup failed for %s %s: %s", block_type, value, e)
                if self.fail_closed:
                    return GateVerdict(status=ResultStatus.SKIPPED_SUPPRESSED, reason=f"Blocklist lookup failed: {e}")
                continue
            if entry:
                return GateVerdict(
                    status=ResultStatus.SKIPPED_SUPPRESSED,
                    reason=f"{block_type.capitalize()} {value} is on the blocklist",
                )

        try:
            suppressed = await self.outreach.is_address_suppressed(email)
        except Exception as e:
            logger.warning("Instantly blocklist lookup failed for %s: %s", email, e)
            if self.fail_closed:
                return GateVerdict(status=ResultStatus.SKIPPED_SUPPRESSED, reason=f"Instantly blocklist lookup failed: {e}")
            return GateVerdict()

        if suppressed:
            return GateVerdict(
                status=ResultStatus.SKIPPED_SUPPRESSED,
                reason=f"{email} is on the Instantly blocklist",
            )
        return GateVerdict()
