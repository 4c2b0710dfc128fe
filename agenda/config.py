import datetime as dt
from enum import Enum

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageAdapter(Enum):
    MEMORY = "memory"
    SQLITE = "sqlite"


class SchedulingConfig(BaseSettings):
    """Clinic-wide booking policy."""

    model_config = SettingsConfigDict(env_prefix="AGENDA_", env_file=".env", extra="ignore")

    business_start: dt.time = dt.time(8, 0)
    business_end: dt.time = dt.time(18, 0)
    allowed_intervals_minutes: frozenset[int] = frozenset({15, 30, 60})
    min_advance_hours: int = Field(default=2, ge=0)
    max_advance_months: int = Field(default=6, ge=0)
    min_gap_minutes: int = Field(default=5, ge=0)
    daily_limit: int = Field(default=20, ge=1)
    patient_daily_limit: int = Field(default=3, ge=1)
    patient_monthly_limit: int = Field(default=10, ge=1)
    allow_weekends: bool = False
    blackout_dates: frozenset[dt.date] = frozenset()

    min_duration_minutes: int = Field(default=15, ge=1)
    max_duration_minutes: int = Field(default=180, ge=1)
    reminder_lead_hours: int = Field(default=24, ge=0)
    suggestion_window_minutes: int = Field(default=120, ge=0)
    enforce_template: bool = True

    @field_validator("allowed_intervals_minutes")
    @classmethod
    def _intervals_positive(cls, value: frozenset[int]) -> frozenset[int]:
        if not value:
            raise ValueError("at least one allowed interval is required")
        if any(m <= 0 or m > 60 for m in value):
            raise ValueError("allowed intervals must be between 1 and 60 minutes")
        return value

    @model_validator(mode="after")
    def _check_ranges(self) -> "SchedulingConfig":
        if self.business_end <= self.business_start:
            raise ValueError("business_end must be after business_start")
        if self.max_duration_minutes < self.min_duration_minutes:
            raise ValueError("max_duration_minutes must be >= min_duration_minutes")
        return self


class StorageConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AGENDA_STORAGE_", env_file=".env", extra="ignore")

    adapter: StorageAdapter = StorageAdapter.MEMORY
    sqlite_path: str = ":memory:"
    busy_timeout_seconds: float = 5.0


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    clinic_timezone: str = "America/Argentina/Buenos_Aires"
    scheduling: SchedulingConfig = Field(default_factory=lambda: SchedulingConfig())
    storage: StorageConfig = Field(default_factory=lambda: StorageConfig())
