"""Supabase integration - Database operations for the assignment pipeline"""
import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple
from supabase import acreate_client, AsyncClient

from backend.app.config import get_settings
from backend.app.models import (
    AssignmentBatch, AssignmentSettings, BatchStats, BatchStatus, Candidate,
    ProcessingResult, SettingsUpdate, SuppressionEntry
)

logger = logging.getLogger(__name__)

_client: Optional[AsyncClient] = None


async def get_supabase_client() -> AsyncClient:
    """Get cached async Supabase client"""
    global _client
    if _client is None:
        settings = get_settings()
        _client = await acreate_client(settings.supabase_url, settings.supabase_key)
    return _client


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first(result) -> Optional[Dict[str, Any]]:
    return result.data[0] if result.data else None


class ContactRepository:
    """Contacts and companies: candidate reads and enrollment write-backs"""

    CONTACT_FIELDS = (
        "id, email, first_name, last_name, title, phone, linkedin_url, company_id, "
        "qualification_status, campaign_id, campaign_name, "
        "companies!inner (id, name, website, description, category_size, pipedrive_id, "
        "location, industries, status)"
    )
    POSTING_FIELDS = (
        "title, location, platform_id, source_id, created_at, "
        "platforms!inner (id, regio_platform, instantly_campaign_id)"
    )

    def __init__(self, client: AsyncClient):
        settings = get_settings()
        self.client = client
        self.contacts = settings.table_contacts
        self.companies = settings.table_companies
        self.job_postings = settings.table_job_postings
        self.candidate_rpc = settings.rpc_candidates

    async def select_candidates_rpc(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Precomputed candidate query (window functions live in the database)"""
        result = await self.client.rpc(self.candidate_rpc, params).execute()
        return result.data or []

    async def find_unassigned_contacts(self, qualification_statuses: List[str], limit: int) -> List[Dict[str, Any]]:
        """Contacts joined with their company, not yet linked to a campaign"""
        result = await (
            self.client.table(self.contacts)
            .select(self.CONTACT_FIELDS)
            .in_("qualification_status", qualification_statuses)
            .is_("campaign_id", "null")
            .is_("campaign_name", "null")
            .not_.is_("email", "null")
            .limit(limit)
            .execute()
        )
        return result.data or []

    async def find_postings_for_company(self, company_id: str, platform_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Most recent job postings routed to a platform"""
        query = (
            self.client.table(self.job_postings)
            .select(self.POSTING_FIELDS)
            .eq("company_id", company_id)
            .not_.is_("platform_id", "null")
        )
        if platform_id:
            query = query.eq("platform_id", platform_id)

        result = await query.order("created_at", desc=True).limit(10).execute()
        return result.data or []

    async def mark_enrolled(self, contact_id: str, lead_id: Optional[str], campaign_id: str, campaign_name: str) -> None:
        """Contact was added to the outreach campaign"""
        data = {
            "campaign_id": campaign_id,
            "campaign_name": campaign_name,
            "qualification_status": "in_campaign",
            "last_touch": _now(),
        }
        if lead_id:
            data["instantly_id"] = lead_id
        await self.client.table(self.contacts).update(data).eq("id", contact_id).execute()

    async def mark_in_campaign(self, contact_id: str, campaign_id: str, campaign_name: str) -> None:
        """Contact already exists in the outreach platform; link it so it is not selected again"""
        await self.client.table(self.contacts).update({
            "campaign_id": campaign_id,
            "campaign_name": campaign_name,
            "qualification_status": "in_campaign",
            "last_touch": _now(),
        }).eq("id", contact_id).execute()

    async def get_retry_state(self, contact_id: str) -> Tuple[int, str]:
        """Current (retry_count, processing_notes)"""
        result = await (
            self.client.table(self.contacts)
            .select("retry_count, processing_notes")
            .eq("id", contact_id)
            .limit(1)
            .execute()
        )
        row = _first(result) or {}
        return int(row.get("retry_count") or 0), row.get("processing_notes") or ""

    async def save_retry_state(self, contact_id: str, retry_count: int, notes: str, disqualify: bool = False) -> None:
        data: Dict[str, Any] = {"retry_count": retry_count, "processing_notes": notes}
        if disqualify:
            data["qualification_status"] = "disqualified"
        await self.client.table(self.contacts).update(data).eq("id", contact_id).execute()

    async def disqualify(self, contact_id: str, note: Optional[str] = None) -> None:
        """Exclude contact from future selection"""
        data: Dict[str, Any] = {"qualification_status": "disqualified"}
        if note:
            _, notes = await self.get_retry_state(contact_id)
            data["processing_notes"] = f"{notes}\n{note}".strip()
        await self.client.table(self.contacts).update(data).eq("id", contact_id).execute()

    async def link_company_to_crm(self, company_id: str, org_id: int) -> None:
        """Store the Pipedrive organization id found by name search (idempotent)"""
        await self.client.table(self.companies).update({
            "pipedrive_id": str(org_id),
            "pipedrive_synced": True,
            "pipedrive_synced_at": _now(),
        }).eq("id", company_id).execute()


class BatchRepository:
    """campaign_assignment_batches - progress, resume state and status"""

    COUNTER_FIELDS = ("total_candidates", "processed", "added", "skipped", "errors")

    def __init__(self, client: AsyncClient):
        settings = get_settings()
        self.client = client
        self.table = settings.table_batches
        self.append_rpc = settings.rpc_append_processed

    @staticmethod
    def to_row(batch: AssignmentBatch) -> Dict[str, Any]:
        stats = batch.stats
        return {
            "batch_id": batch.batch_id,
            "status": batch.status.value,
            "total_candidates": stats.total_candidates,
            "processed": stats.processed,
            "added": stats.added,
            "skipped": stats.skipped,
            "errors": stats.errors,
            "platform_stats": {k: v.model_dump() for k, v in stats.platform_stats.items()},
            "candidate_ids": batch.candidate_ids,
            "candidates": [c.model_dump(mode="json") for c in batch.candidates],
            "processed_ids": batch.processed_ids,
            "orchestration_id": batch.orchestration_id,
            "platform_id": batch.platform_id,
            "dry_run": batch.dry_run,
            "started_at": batch.started_at.isoformat() if batch.started_at else None,
            "completed_at": batch.completed_at.isoformat() if batch.completed_at else None,
            "updated_at": _now(),
            "last_error": batch.last_error,
        }

    @staticmethod
    def from_row(row: Dict[str, Any]) -> AssignmentBatch:
        stats = BatchStats(
            total_candidates=row.get("total_candidates") or 0,
            processed=row.get("processed") or 0,
            added=row.get("added") or 0,
            skipped=row.get("skipped") or 0,
            errors=row.get("errors") or 0,
            platform_stats=row.get("platform_stats") or {},
        )
        return AssignmentBatch(
            batch_id=row["batch_id"],
            status=row.get("status") or BatchStatus.PENDING,
            stats=stats,
            candidate_ids=row.get("candidate_ids") or [],
            candidates=row.get("candidates") or [],
            processed_ids=row.get("processed_ids") or [],
            orchestration_id=row.get("orchestration_id"),
            platform_id=row.get("platform_id"),
            dry_run=bool(row.get("dry_run")),
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            updated_at=row.get("updated_at"),
            last_error=row.get("last_error"),
        )

    async def save(self, batch: AssignmentBatch) -> None:
        """Upsert the whole record keyed by batch_id"""
        await self.client.table(self.table).upsert(
            self.to_row(batch), on_conflict="batch_id"
        ).execute()

    async def get(self, batch_id: str) -> Optional[AssignmentBatch]:
        result = await self.client.table(self.table).select("*").eq("batch_id", batch_id).limit(1).execute()
        row = _first(result)
        return self.from_row(row) if row else None

    async def get_status(self, batch_id: str) -> Optional[BatchStatus]:
        result = await self.client.table(self.table).select("status").eq("batch_id", batch_id).limit(1).execute()
        row = _first(result)
        return BatchStatus(row["status"]) if row else None

    async def find_active(self, dry_run: bool = False) -> Optional[AssignmentBatch]:
        """Most recent sequential batch still processing in the same mode (parallel workers excluded)"""
        result = await (
            self.client.table(self.table)
            .select("*")
            .eq("status", BatchStatus.PROCESSING.value)
            .eq("dry_run", dry_run)
            .is_("orchestration_id", "null")
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        row = _first(result)
        return self.from_row(row) if row else None

    async def find_latest_lead_limit(self) -> Optional[AssignmentBatch]:
        result = await (
            self.client.table(self.table)
            .select("batch_id, status, updated_at, last_error")
            .eq("status", BatchStatus.LEAD_LIMIT_REACHED.value)
            .order("updated_at", desc=True)
            .limit(1)
            .execute()
        )
        row = _first(result)
        return self.from_row(row) if row else None

    async def find_latest_active_id(self) -> Optional[str]:
        """Most recent batch that is processing candidates"""
        result = await (
            self.client.table(self.table)
            .select("batch_id")
            .eq("status", BatchStatus.PROCESSING.value)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        row = _first(result)
        return row["batch_id"] if row else None

    async def update_progress(self, batch_id: str, stats: BatchStats) -> bool:
        """Write counters while the batch is processing; terminal batches stay frozen"""
        data = {field: getattr(stats, field) for field in self.COUNTER_FIELDS}
        data["platform_stats"] = {k: v.model_dump() for k, v in stats.platform_stats.items()}
        data["updated_at"] = _now()
        result = await (
            self.client.table(self.table)
            .update(data)
            .eq("batch_id", batch_id)
            .eq("status", BatchStatus.PROCESSING.value)
            .execute()
        )
        return bool(result.data)

    async def append_processed_id(self, batch_id: str, contact_id: str) -> None:
        """Atomic array append; read-modify-write when the function is missing"""
        try:
            await self.client.rpc(self.append_rpc, {
                "p_batch_id": batch_id,
                "p_contact_id": contact_id,
            }).execute()
            return
        except Exception as e:
            logger.warning("[%s] append RPC unavailable, falling back to read-modify-write: %s", batch_id, e)

        result = await self.client.table(self.table).select("processed_ids").eq("batch_id", batch_id).limit(1).execute()
        row = _first(result) or {}
        processed = list(row.get("processed_ids") or [])
        if contact_id in processed:
            return
        processed.append(contact_id)
        await self.client.table(self.table).update(
            {"processed_ids": processed}
        ).eq("batch_id", batch_id).execute()

    async def set_status(
        self,
        batch_id: str,
        status: BatchStatus,
        error: Optional[str] = None,
        completed: bool = False
    ) -> None:
        data: Dict[str, Any] = {"status": status.value, "updated_at": _now()}
        if error is not None:
            data["last_error"] = error
        if completed:
            data["completed_at"] = _now()
        await self.client.table(self.table).update(data).eq("batch_id", batch_id).execute()

    async def record_error(self, batch_id: str, error: str) -> None:
        """Keep status, store the last error"""
        await self.client.table(self.table).update({
            "last_error": error,
            "updated_at": _now(),
        }).eq("batch_id", batch_id).execute()

    async def recent(self, limit: int = 10) -> List[Dict[str, Any]]:
        result = await (
            self.client.table(self.table)
            .select("batch_id, status, total_candidates, processed, added, skipped, errors, "
                    "platform_stats, orchestration_id, platform_id, dry_run, started_at, completed_at, "
                    "updated_at, last_error")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data or []

    async def created_since(self, since: datetime) -> List[Dict[str, Any]]:
        result = await (
            self.client.table(self.table)
            .select("added, skipped, errors")
            .gte("created_at", since.isoformat())
            .execute()
        )
        return result.data or []


class AssignmentLogRepository:
    """campaign_assignment_logs - append-only per-contact outcomes"""

    def __init__(self, client: AsyncClient):
        self.client = client
        self.table = get_settings().table_logs

    async def insert(self, batch_id: str, candidate: Candidate, result: ProcessingResult) -> None:
        await self.client.table(self.table).insert({
            "batch_id": batch_id,
            "contact_id": candidate.id,
            "contact_email": candidate.email,
            "contact_name": candidate.full_name,
            "company_id": candidate.company_id,
            "company_name": candidate.company_name,
            "platform_id": candidate.platform_id,
            "platform_name": candidate.platform_name,
            "instantly_campaign_id": candidate.instantly_campaign_id,
            "status": result.status.value,
            "skip_reason": result.skip_reason,
            "error_message": result.error,
            "ai_personalization": result.personalization.model_dump() if result.personalization else None,
            "ai_processing_time_ms": result.ai_processing_time_ms,
            "instantly_lead_id": result.instantly_lead_id,
            "pipedrive_org_id": result.pipedrive_org_id,
            "pipedrive_is_klant": result.pipedrive_is_klant,
        }).execute()

    async def list_for_batch(
        self,
        batch_id: str,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        query = self.client.table(self.table).select("*").eq("batch_id", batch_id)
        if status:
            query = query.eq("status", status)
        result = await query.order("created_at", desc=False).range(offset, offset + limit - 1).execute()
        return result.data or []

    async def list_between(self, date_from: str, date_to: str) -> List[Dict[str, Any]]:
        result = await (
            self.client.table(self.table)
            .select("status, platform_name, created_at")
            .gte("created_at", date_from)
            .lte("created_at", date_to)
            .execute()
        )
        return result.data or []


class SuppressionRepository:
    """Internal blocklist (emails and domains)"""

    def __init__(self, client: AsyncClient):
        self.client = client
        self.table = get_settings().table_blocklist

    async def find_active_entry(self, value: str, block_type: str) -> Optional[SuppressionEntry]:
        result = await (
            self.client.table(self.table)
            .select("id, value, block_type, reason")
            .eq("value", value.strip().lower())
            .eq("block_type", block_type)
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        row = _first(result)
        return SuppressionEntry(**{**row, "id": str(row["id"])}) if row else None


class SettingsRepository:
    """campaign_assignment_settings - single row, operator controlled"""

    def __init__(self, client: AsyncClient):
        self.client = client
        self.table = get_settings().table_settings

    @staticmethod
    def defaults() -> AssignmentSettings:
        settings = get_settings()
        return AssignmentSettings(
            max_total_contacts=settings.default_max_total,
            max_per_platform=settings.default_max_per_channel,
            is_enabled=True,
            delay_between_contacts_ms=settings.default_delay_ms,
        )

    async def get_settings(self) -> AssignmentSettings:
        """Stored settings, or defaults when the table is missing or empty"""
        try:
            result = await self.client.table(self.table).select("*").limit(1).execute()
            row = _first(result)
        except Exception as e:
            logger.warning("Could not read assignment settings, using defaults: %s", e)
            return self.defaults()

        if not row:
            logger.info("No assignment settings row, using defaults")
            return self.defaults()
        return AssignmentSettings(**{**row, "id": str(row.get("id", "default"))})

    async def update_settings(self, update: SettingsUpdate, updated_by: Optional[str] = None) -> AssignmentSettings:
        current = await self.get_settings()
        data = update.model_dump(exclude_none=True)
        data["updated_at"] = _now()
        if updated_by:
            data["updated_by"] = updated_by

        if current.id == "default":
            result = await self.client.table(self.table).insert(
                {**current.model_dump(exclude={"id", "updated_at", "updated_by"}), **data}
            ).execute()
        else:
            result = await self.client.table(self.table).update(data).eq("id", current.id).execute()

        row = _first(result)
        return AssignmentSettings(**{**row, "id": str(row.get("id"))}) if row else current.model_copy(update=data)
