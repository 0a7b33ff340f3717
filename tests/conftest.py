"""
Shared pytest fixtures for the campaign assignment test suite.
"""

import os

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-service-role-key")
os.environ.setdefault("INSTANTLY_API_KEY", "test-instantly-key")
os.environ.setdefault("PIPEDRIVE_API_TOKEN", "test-pipedrive-token")
os.environ.setdefault("LLM_API_KEY", "test-llm-key")

from types import SimpleNamespace

import pytest

from backend.app.core.eligibility import EligibilityGate
from backend.app.core.enrollment import EnrollmentClient
from backend.app.core.orchestrator import AssignmentOrchestrator

from fakes import (
    NOW, FakeBatches, FakeContacts, FakeCrm, FakeGenerator, FakeLogs, FakeOutreach,
    FakeSelector, FakeSettings, FakeSuppression, RecordingSleep
)


@pytest.fixture
def pipeline():
    """Orchestrator wired to in-memory collaborators.

    Tests tweak the fakes (pipeline.crm, pipeline.outreach, ...) before running.
    """
    contacts = FakeContacts()
    crm = FakeCrm()
    suppression = FakeSuppression()
    outreach = FakeOutreach()
    generator = FakeGenerator()
    selector = FakeSelector()
    batches = FakeBatches()
    logs = FakeLogs()
    settings = FakeSettings()
    sleep = RecordingSleep()

    gate = EligibilityGate(
        crm=crm,
        suppression_store=suppression,
        outreach=outreach,
        contacts=contacts,
        customer_status_id=303,
        fail_closed=False,
    )
    orchestrator = AssignmentOrchestrator(
        selector=selector,
        gate=gate,
        generator=generator,
        enrollment=EnrollmentClient(outreach, assigned_to=""),
        contacts=contacts,
        batches=batches,
        logs=logs,
        settings_repo=settings,
        chunk_size=25,
        sleep=sleep,
        clock=lambda: NOW,
    )

    return SimpleNamespace(
        orchestrator=orchestrator,
        gate=gate,
        contacts=contacts,
        crm=crm,
        suppression=suppression,
        outreach=outreach,
        generator=generator,
        selector=selector,
        batches=batches,
        logs=logs,
        settings=settings,
        sleep=sleep,
    )
