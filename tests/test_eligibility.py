"""
Tests for the eligibility gate: campaign target, CRM customer protection, suppression.
"""

import asyncio

from backend.app.core.eligibility import EligibilityGate
from backend.app.integrations.pipedrive import CrmError
from backend.app.models import CrmOrganization, ResultStatus

from fakes import FakeContacts, FakeCrm, FakeOutreach, FakeSuppression, make_candidate


def build_gate(crm=None, suppression=None, outreach=None, contacts=None, fail_closed=False):
    return EligibilityGate(
        crm=crm or FakeCrm(),
        suppression_store=suppression or FakeSuppression(),
        outreach=outreach or FakeOutreach(),
        contacts=contacts or FakeContacts(),
        customer_status_id=303,
        fail_closed=fail_closed,
    )


def test_clean_candidate_passes():
    verdict = asyncio.run(build_gate().check(make_candidate()))
    assert verdict.passed


def test_missing_campaign_is_skipped_before_any_lookup():
    crm = FakeCrm()
    gate = build_gate(crm=crm)

    verdict = asyncio.run(gate.check(make_candidate(instantly_campaign_id=None)))

    assert verdict.status == ResultStatus.SKIPPED_NO_CAMPAIGN
    assert crm.searches == []


def test_customer_company_is_protected_and_linked():
    candidate = make_candidate()
    crm = FakeCrm(
        organizations={candidate.company_name: [CrmOrganization(id=77, name=candidate.company_name)]},
        statuses={77: 303},
    )
    contacts = FakeContacts()
    suppression = FakeSuppression()

    verdict = asyncio.run(build_gate(crm=crm, contacts=contacts, suppression=suppression).check(candidate))

    assert verdict.status == ResultStatus.SKIPPED_CUSTOMER
    assert verdict.crm_is_customer
    assert verdict.crm_org_id == 77
    assert contacts.crm_links == {candidate.company_id: 77}
    assert suppression.lookups == []


def test_non_customer_org_passes_with_org_id():
    candidate = make_candidate()
    crm = FakeCrm(organizations={candidate.company_name: [CrmOrganization(id=12)]}, statuses={12: 301})

    verdict = asyncio.run(build_gate(crm=crm).check(candidate))

    assert verdict.passed
    assert verdict.crm_org_id == 12


def test_crm_failure_fails_open_by_default():
    verdict = asyncio.run(build_gate(crm=FakeCrm(error=CrmError("Pipedrive timeout"))).check(make_candidate()))
    assert verdict.passed


def test_crm_failure_fails_closed_when_configured():
    gate = build_gate(crm=FakeCrm(error=CrmError("Pipedrive timeout")), fail_closed=True)
    verdict = asyncio.run(gate.check(make_candidate()))
    assert not verdict.passed
    assert "Pipedrive" in verdict.reason


def test_internal_suppression_short_circuits_external_check():
    candidate = make_candidate()
    suppression = FakeSuppression(entries={(candidate.email, "email")})
    outreach = FakeOutreach()

    verdict = asyncio.run(build_gate(suppression=suppression, outreach=outreach).check(candidate))

    assert verdict.status == ResultStatus.SKIPPED_SUPPRESSED
    assert outreach.suppression_checks == []


def test_suppressed_domain():
    candidate = make_candidate()
    suppression = FakeSuppression(entries={(candidate.email_domain, "domain")})

    verdict = asyncio.run(build_gate(suppression=suppression).check(candidate))

    assert verdict.status == ResultStatus.SKIPPED_SUPPRESSED
    assert suppression.lookups == [(candidate.email, "email"), (candidate.email_domain, "domain")]


def test_external_suppression():
    candidate = make_candidate()
    outreach = FakeOutreach(suppressed={candidate.email})

    verdict = asyncio.run(build_gate(outreach=outreach).check(candidate))

    assert verdict.status == ResultStatus.SKIPPED_SUPPRESSED
    assert outreach.suppression_checks == [candidate.email]


def test_suppression_store_failure_fails_open():
    verdict = asyncio.run(build_gate(suppression=FakeSuppression(error=RuntimeError("db down"))).check(make_candidate()))
    assert verdict.passed
