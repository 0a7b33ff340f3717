"""Pydantic Models"""
from .candidate import (
    Candidate, EnrichmentPayload, FALLBACK_CATEGORY, PERSONALIZATION_MAX_WORDS
)
from .batch import (
    BatchStatus, ResultStatus, TERMINAL_STATUSES, ACTIVE_STATUSES,
    PlatformStats, BatchStats, ProcessingResult, AssignmentBatch, BatchResult,
    AssignmentSettings, SettingsUpdate, RunOptions, ChannelRun, ParallelRunResult
)
from .integrations import (
    CrmOrganization, EnrollmentResult, SuppressionEntry
)

__all__ = [
    "Candidate", "EnrichmentPayload", "FALLBACK_CATEGORY", "PERSONALIZATION_MAX_WORDS",
    "BatchStatus", "ResultStatus", "TERMINAL_STATUSES", "ACTIVE_STATUSES",
    "PlatformStats", "BatchStats", "ProcessingResult", "AssignmentBatch", "BatchResult",
    "AssignmentSettings", "SettingsUpdate", "RunOptions", "ChannelRun", "ParallelRunResult",
    "CrmOrganization", "EnrollmentResult", "SuppressionEntry",
]
