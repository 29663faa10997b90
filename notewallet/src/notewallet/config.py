"""
Configuration for note selection, consolidation and auto-consolidation.
"""

from __future__ import annotations

from notecore.constants import (
    CONSOLIDATION_CIRCUIT_INPUTS,
    DEFAULT_CHECK_INTERVAL_MS,
    DEFAULT_CONFIRMATION_TIMEOUT_SEC,
    DEFAULT_DUST_THRESHOLD,
    DEFAULT_FRAGMENTATION_THRESHOLD,
    DEFAULT_MAX_DUST_NOTES,
    DEFAULT_MAX_NOTE_COUNT,
    DEFAULT_SETTLE_POLL_INTERVAL_SEC,
    DEFAULT_SETTLE_TIMEOUT_SEC,
    MAX_CONSOLIDATION_ITERATIONS,
    MAX_TRANSFER_INPUTS,
    MIN_NOTES_PER_BATCH,
)
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from notewallet.wallet.models import SelectionStrategy


class SelectionOptions(BaseModel):
    """Options for selecting notes to fund a spend."""

    strategy: SelectionStrategy = SelectionStrategy.SMALLEST_FIRST
    max_inputs: int = Field(default=MAX_TRANSFER_INPUTS, ge=1)
    fee_amount: int = Field(default=0, ge=0, description="Added to the target amount")


class ConsolidationConfig(BaseModel):
    """Configuration for the consolidation orchestrator."""

    token_id: str = Field(..., min_length=1)

    # Notes merged per batch; bounded by the consolidation circuit arity
    max_notes_per_batch: int = Field(default=CONSOLIDATION_CIRCUIT_INPUTS, ge=MIN_NOTES_PER_BATCH)
    # Inputs available to the spend that follows a target-aware consolidation
    max_inputs: int = Field(default=MAX_TRANSFER_INPUTS, ge=1)
    dust_threshold: int = Field(default=DEFAULT_DUST_THRESHOLD, ge=0)

    max_iterations: int = Field(default=MAX_CONSOLIDATION_ITERATIONS, ge=1)
    confirmation_timeout_sec: float = Field(default=DEFAULT_CONFIRMATION_TIMEOUT_SEC, gt=0)
    settle_timeout_sec: float = Field(
        default=DEFAULT_SETTLE_TIMEOUT_SEC,
        ge=0,
        description="Upper bound on waiting for the note provider to reflect a confirmed batch",
    )
    settle_poll_interval_sec: float = Field(default=DEFAULT_SETTLE_POLL_INTERVAL_SEC, gt=0)

    @model_validator(mode="after")
    def validate_config(self) -> ConsolidationConfig:
        if self.settle_timeout_sec and self.settle_poll_interval_sec > self.settle_timeout_sec:
            raise ValueError(
                f"settle_poll_interval_sec ({self.settle_poll_interval_sec}) must not exceed "
                f"settle_timeout_sec ({self.settle_timeout_sec})"
            )
        return self


class AutoConsolidationConfig(BaseModel):
    """Policy thresholds for the auto-consolidation monitor."""

    enabled: bool = False
    fragmentation_threshold: int = Field(default=DEFAULT_FRAGMENTATION_THRESHOLD, ge=0, le=100)
    max_note_count: int = Field(default=DEFAULT_MAX_NOTE_COUNT, ge=1)
    max_dust_notes: int = Field(default=DEFAULT_MAX_DUST_NOTES, ge=1)
    dust_threshold: int = Field(default=DEFAULT_DUST_THRESHOLD, ge=0)
    # 0 disables the periodic loop; checks then only run on demand
    check_interval_ms: int = Field(default=DEFAULT_CHECK_INTERVAL_MS, ge=0)

    model_config = {"frozen": False}

    @property
    def check_interval_sec(self) -> float:
        return self.check_interval_ms / 1000


class Settings(BaseSettings):
    """Environment configuration (NOTEWALLET_* variables or .env)."""

    model_config = SettingsConfigDict(
        env_prefix="NOTEWALLET_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    log_level: str = "INFO"
    token_id: str = "default"

    max_notes_per_batch: int = CONSOLIDATION_CIRCUIT_INPUTS
    max_inputs: int = MAX_TRANSFER_INPUTS
    dust_threshold: int = DEFAULT_DUST_THRESHOLD
    max_iterations: int = MAX_CONSOLIDATION_ITERATIONS

    fragmentation_threshold: int = DEFAULT_FRAGMENTATION_THRESHOLD
    max_note_count: int = DEFAULT_MAX_NOTE_COUNT
    max_dust_notes: int = DEFAULT_MAX_DUST_NOTES
    check_interval_ms: int = DEFAULT_CHECK_INTERVAL_MS

    def consolidation_config(self, **overrides: object) -> ConsolidationConfig:
        values: dict[str, object] = {
            "token_id": self.token_id,
            "max_notes_per_batch": self.max_notes_per_batch,
            "max_inputs": self.max_inputs,
            "dust_threshold": self.dust_threshold,
            "max_iterations": self.max_iterations,
        }
        values.update(overrides)
        return ConsolidationConfig.model_validate(values)

    def auto_consolidation_config(self, **overrides: object) -> AutoConsolidationConfig:
        values: dict[str, object] = {
            "fragmentation_threshold": self.fragmentation_threshold,
            "max_note_count": self.max_note_count,
            "max_dust_notes": self.max_dust_notes,
            "dust_threshold": self.dust_threshold,
            "check_interval_ms": self.check_interval_ms,
        }
        values.update(overrides)
        return AutoConsolidationConfig.model_validate(values)


def get_settings() -> Settings:
    return Settings()
