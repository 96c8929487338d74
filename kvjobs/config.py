"""
Settings loaded from environment variables.

Uses pydantic-settings for validation and .env file support. Every variable
is prefixed with ``KVJOBS_`` (e.g. ``KVJOBS_TIME_BUDGET_SECONDS=240``).

There is no module-level instance: the caller builds one Settings object and
passes it to every component that needs it.
"""

from __future__ import annotations

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Tunables for the job subsystem."""

    model_config = SettingsConfigDict(
        env_prefix="KVJOBS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Processor
    time_budget_seconds: float = Field(default=300, gt=0, description="Soft deadline of one processor run")
    rearm_delay_seconds: float = Field(default=60, ge=0, description="Wake-up delay when work remains after a run")
    enqueue_wakeup_delay_seconds: float = Field(default=25, ge=0, description="Wake-up delay armed by enqueue on an empty queue")
    lock_timeout_seconds: float = Field(default=10, ge=0, description="Bounded wait for the execution lock")

    # Checkpoints and results
    checkpoint_ttl_seconds: int = Field(default=1800, gt=0)
    result_ttl_seconds: int = Field(default=21600, gt=0)
    requester_ttl_seconds: int = Field(default=3600, gt=0)
    cache_entry_limit_bytes: int = Field(default=100 * 1024, gt=0)
    chunk_ratio: float = Field(default=0.95, gt=0, lt=1)

    # Health score job
    health_batch_size: int = Field(default=200, gt=0)
    health_history_days: int = Field(default=90, gt=0)
    health_top_n: int = Field(default=10, gt=0)
    health_history_action: str = "MODIFIKASI"
    closed_ticket_statuses: tuple[str, ...] = ("done", "closed", "resolved")

    # Sheet headers
    vm_primary_key_header: str = "Primary Key"
    vm_name_header: str = "Virtual Machine"
    vm_vcenter_header: str = "vCenter"
    vm_uptime_header: str = "Uptime"
    log_primary_key_header: str = "Primary Key"
    log_action_header: str = "Action"
    ticket_vm_name_header: str = "VM Name"
    ticket_status_header: str = "Status"

    # Operations
    operator_chat_id: str | None = None
    storage_dir: str = ".kvjobs"
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def time_budget(self) -> timedelta:
        return timedelta(seconds=self.time_budget_seconds)

    @property
    def rearm_delay(self) -> timedelta:
        return timedelta(seconds=self.rearm_delay_seconds)

    @property
    def enqueue_wakeup_delay(self) -> timedelta:
        return timedelta(seconds=self.enqueue_wakeup_delay_seconds)

    @property
    def chunk_size(self) -> int:
        """Largest chunk BlobStore writes, kept below the cache entry ceiling."""
        return max(1, int(self.cache_entry_limit_bytes * self.chunk_ratio))
