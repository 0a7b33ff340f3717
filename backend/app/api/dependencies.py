"""API Dependencies - Shared dependency injection"""
from typing import Optional
from fastapi import Depends, Header, HTTPException
from supabase import AsyncClient

from backend.app.config import get_settings
from backend.app.core.eligibility import EligibilityGate
from backend.app.core.enrollment import EnrollmentClient
from backend.app.core.orchestrator import AssignmentOrchestrator
from backend.app.core.personalization import PersonalizationGenerator
from backend.app.core.selection import CandidateSelector
from backend.app.integrations.instantly import InstantlyClient
from backend.app.integrations.pipedrive import PipedriveClient
from backend.app.integrations.supabase import (
    AssignmentLogRepository, BatchRepository, ContactRepository,
    SettingsRepository, SuppressionRepository, get_supabase_client
)


async def get_db() -> AsyncClient:
    """Dependency for the shared Supabase client"""
    return await get_supabase_client()


def get_batch_repo(db: AsyncClient = Depends(get_db)) -> BatchRepository:
    return BatchRepository(db)


def get_log_repo(db: AsyncClient = Depends(get_db)) -> AssignmentLogRepository:
    return AssignmentLogRepository(db)


def get_settings_repo(db: AsyncClient = Depends(get_db)) -> SettingsRepository:
    return SettingsRepository(db)


def get_selector(db: AsyncClient = Depends(get_db)) -> CandidateSelector:
    return CandidateSelector(ContactRepository(db), excluded_source_id=get_settings().excluded_source_id)


def get_orchestrator(db: AsyncClient = Depends(get_db)) -> AssignmentOrchestrator:
    """Wire every collaborator of the pipeline"""
    contacts = ContactRepository(db)
    outreach = InstantlyClient()
    gate = EligibilityGate(
        crm=PipedriveClient(),
        suppression_store=SuppressionRepository(db),
        outreach=outreach,
        contacts=contacts,
    )
    return AssignmentOrchestrator(
        selector=CandidateSelector(contacts, excluded_source_id=get_settings().excluded_source_id),
        gate=gate,
        generator=PersonalizationGenerator(),
        enrollment=EnrollmentClient(outreach),
        contacts=contacts,
        batches=BatchRepository(db),
        logs=AssignmentLogRepository(db),
        settings_repo=SettingsRepository(db),
    )


def verify_cron_secret(
    x_api_key: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
) -> None:
    """Shared secret for scheduler calls; open when CRON_SECRET is unset"""
    secret = get_settings().cron_secret
    if not secret:
        return

    bearer = None
    if authorization and authorization.lower().startswith("bearer "):
        bearer = authorization[7:].strip()

    if secret not in (x_api_key, bearer):
        raise HTTPException(status_code=401, detail="Unauthorized")
