"""
Campaign Assigner - Configuration
Environment-based settings with Pydantic validation
"""
from functools import lru_cache
from typing import Optional, List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # App
    app_name: str = "Campaign Assigner"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database - Supabase
    supabase_url: str
    supabase_key: str

    # Tables
    table_contacts: str = "contacts"
    table_companies: str = "companies"
    table_job_postings: str = "job_postings"
    table_batches: str = "campaign_assignment_batches"
    table_logs: str = "campaign_assignment_logs"
    table_settings: str = "campaign_assignment_settings"
    table_blocklist: str = "blocklist_entries"

    # Stored procedures
    rpc_candidates: str = "get_campaign_assignment_candidates"
    rpc_append_processed: str = "append_processed_contact_id"

    # Text generation (OpenAI-compatible chat completions, Mistral by default)
    llm_api_key: Optional[str] = None
    llm_base_url: str = "https://api.mistral.ai/v1"
    llm_model: str = "mistral-medium-latest"
    llm_max_tokens: int = 1000
    llm_temperature: float = 0.7
    llm_timeout_seconds: float = 60.0
    llm_max_attempts: int = 3
    llm_base_delay_seconds: float = 1.0

    # Instantly (outreach platform)
    instantly_api_key: Optional[str] = None
    instantly_base_url: str = "https://api.instantly.ai"
    instantly_assigned_to: Optional[str] = None
    instantly_timeout_seconds: float = 30.0

    # Pipedrive (CRM)
    pipedrive_api_token: Optional[str] = None
    pipedrive_base_url: str = "https://api.pipedrive.com/v1"
    pipedrive_status_field_id: str = "e8a27f47529d2091399f063b834339316d7d852a"
    pipedrive_customer_status_id: int = 303  # "Klant"
    pipedrive_timeout_seconds: float = 15.0

    # Assignment defaults (used when the settings table is unavailable)
    default_max_total: int = 500
    default_max_per_channel: int = 30
    default_delay_ms: int = 500
    chunk_size: int = 25
    lead_limit_cooldown_hours: float = 4.0
    excluded_source_id: Optional[str] = "3f4cddbd-292b-42fe-acfa-992fc66853a9"

    # Eligibility gate: skip the candidate when a CRM/suppression lookup errors
    gate_fail_closed: bool = False

    # Scheduler
    cron_secret: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    # CORS
    allowed_origins: List[str] = ["*"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance"""
    return Settings()
