"""Batch models - assignment runs, per-contact results and operator settings"""
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict
from pydantic import BaseModel, Field

from .candidate import Candidate, EnrichmentPayload


class BatchStatus(str, Enum):
    """Assignment batch lifecycle"""
    PENDING = "pending"
    SELECTING = "selecting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    LEAD_LIMIT_REACHED = "lead_limit_reached"


TERMINAL_STATUSES = {
    BatchStatus.COMPLETED,
    BatchStatus.FAILED,
    BatchStatus.CANCELLED,
    BatchStatus.LEAD_LIMIT_REACHED,
}

ACTIVE_STATUSES = {BatchStatus.PENDING, BatchStatus.SELECTING, BatchStatus.PROCESSING}


class ResultStatus(str, Enum):
    """Outcome of processing one candidate"""
    ADDED = "added"
    SKIPPED_CUSTOMER = "skipped_klant"
    SKIPPED_NO_CAMPAIGN = "skipped_no_campaign"
    SKIPPED_ENRICHMENT_FAILED = "skipped_ai_error"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    SKIPPED_SUPPRESSED = "skipped_blocklisted"
    SKIPPED_LEAD_LIMIT = "skipped_lead_limit"
    SKIPPED_DRY_RUN = "skipped_dry_run"
    ERROR = "error"


class PlatformStats(BaseModel):
    """Counters for one channel"""
    total: int = 0
    added: int = 0
    skipped: int = 0
    errors: int = 0


class BatchStats(BaseModel):
    """Running counters; processed == added + skipped + errors"""
    total_candidates: int = 0
    processed: int = 0
    added: int = 0
    skipped: int = 0
    errors: int = 0
    platform_stats: Dict[str, PlatformStats] = Field(default_factory=dict)

    def record(self, platform_name: str, status: ResultStatus) -> None:
        """Count one finished candidate"""
        platform = self.platform_stats.setdefault(platform_name, PlatformStats())
        platform.total += 1
        self.processed += 1

        if status == ResultStatus.ADDED:
            self.added += 1
            platform.added += 1
        elif status == ResultStatus.ERROR:
            self.errors += 1
            platform.errors += 1
        else:
            self.skipped += 1
            platform.skipped += 1

    @property
    def remaining(self) -> int:
        return max(self.total_candidates - self.processed, 0)


class ProcessingResult(BaseModel):
    """Immutable outcome record for one candidate in one batch"""
    contact_id: str
    contact_email: str
    company_name: str
    platform_name: str
    status: ResultStatus = ResultStatus.ERROR
    instantly_lead_id: Optional[str] = None
    skip_reason: Optional[str] = None
    error: Optional[str] = None
    personalization: Optional[EnrichmentPayload] = None
    ai_processing_time_ms: Optional[int] = None
    pipedrive_org_id: Optional[int] = None
    pipedrive_is_klant: bool = False

    @property
    def lead_limit_reached(self) -> bool:
        return self.status == ResultStatus.SKIPPED_LEAD_LIMIT


class AssignmentBatch(BaseModel):
    """Durable batch record.

    `candidates` is fixed when the batch is created; `processed_ids` only grows.
    Everything needed to resume after a restart lives here.
    """
    batch_id: str
    status: BatchStatus = BatchStatus.PENDING
    stats: BatchStats = Field(default_factory=BatchStats)
    candidate_ids: List[str] = Field(default_factory=list)
    candidates: List[Candidate] = Field(default_factory=list)
    processed_ids: List[str] = Field(default_factory=list)
    orchestration_id: Optional[str] = None
    platform_id: Optional[str] = None
    dry_run: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def pending_candidates(self) -> List[Candidate]:
        """Candidates not yet processed, in selection order"""
        done = set(self.processed_ids)
        return [c for c in self.candidates if c.id not in done]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class BatchResult(BaseModel):
    """What one orchestrator invocation reports back"""
    batch_id: str
    status: BatchStatus
    stats: BatchStats = Field(default_factory=BatchStats)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    is_resume: bool = False
    lead_limit_reached: bool = False
    skipped: bool = False
    message: Optional[str] = None

    @property
    def has_more_to_process(self) -> bool:
        return self.status == BatchStatus.PROCESSING and self.stats.remaining > 0


class AssignmentSettings(BaseModel):
    """Operator-controlled settings (campaign_assignment_settings row)"""
    id: str = "default"
    max_total_contacts: int = 500
    max_per_platform: int = 30
    is_enabled: bool = True
    delay_between_contacts_ms: int = 500
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None


class SettingsUpdate(BaseModel):
    """Fields an operator can change"""
    max_total_contacts: Optional[int] = Field(default=None, ge=1, le=5000)
    max_per_platform: Optional[int] = Field(default=None, ge=1, le=500)
    is_enabled: Optional[bool] = None
    delay_between_contacts_ms: Optional[int] = Field(default=None, ge=0, le=60000)


class RunOptions(BaseModel):
    """Per-invocation overrides; None falls back to stored settings"""
    max_total: Optional[int] = Field(default=None, ge=1)
    max_per_platform: Optional[int] = Field(default=None, ge=1)
    delay_ms: Optional[int] = Field(default=None, ge=0)
    chunk_size: Optional[int] = Field(default=None, ge=1)
    dry_run: bool = False
    resume_batch_id: Optional[str] = None
    platform_id: Optional[str] = None
    orchestration_id: Optional[str] = None


class ChannelRun(BaseModel):
    """One channel-scoped worker inside a parallel orchestration"""
    platform_id: str
    platform_name: str
    candidates: int = 0
    batch_id: Optional[str] = None
    status: Optional[BatchStatus] = None
    added: int = 0
    error: Optional[str] = None


class ParallelRunResult(BaseModel):
    """Outcome of fanning a run out over all channels"""
    orchestration_id: Optional[str] = None
    total_candidates: int = 0
    channels: List[ChannelRun] = Field(default_factory=list)
    skipped: bool = False
    lead_limit_reached: bool = False
    message: Optional[str] = None
