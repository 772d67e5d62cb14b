# src/config/settings.py — v3
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings: LLM routing,
artifact store location, commit/push behaviour and logging.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === LLM PROVIDERS ===
    llm_default_provider: str = "anthropic"
    llm_default_model: str = "claude-sonnet-4-20250514"
    llm_default_temperature: float = 0.2
    llm_max_tokens_per_step: int = 4096

    # Provider API keys
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # Per-phase LLM assignment
    llm_phase_analysis: str = ""
    llm_phase_synthesis: str = ""

    # Per-step LLM assignment (highest priority), "step=provider:model,..."
    llm_step_overrides: str = ""

    # === Artifact store ===
    specs_folder: str = "specs"
    specs_branch: str = "main"
    specs_repo_private: bool = True
    github_owner: str = ""

    # === Run ===
    auto_push: bool = True
    skip_parent_commit: bool = False
    require_existing: bool = False
    skip_steps: str = ""
    key_file_max_chars: int = 5000
    existing_spec_max_chars: int = 15000
    summary_max_chars: int = 500
    # Drop analysis steps whose features the repository does not show
    feature_planning: bool = False
    # off: register outputs as-is; fix: repair what can be repaired; strict: reject on warnings
    output_validation: Literal["off", "fix", "strict"] = "fix"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("specs_folder")
    @classmethod
    def validate_specs_folder(cls, v: str) -> str:
        """The artifact store lives inside the primary repository."""
        path = PurePosixPath(v.strip())
        if not v.strip("/ ") or path.is_absolute() or ".." in path.parts:
            raise ValueError("specs_folder must be a relative path inside the repository")
        return v.strip().strip("/")

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.summary_max_chars <= 0:
            errors.append("SUMMARY_MAX_CHARS must be > 0")

        if self.key_file_max_chars <= 0 or self.existing_spec_max_chars <= 0:
            errors.append("KEY_FILE_MAX_CHARS and EXISTING_SPEC_MAX_CHARS must be > 0")

        for item in self._split(self.llm_step_overrides):
            step, sep, assignment = item.partition("=")
            if not sep or ":" not in assignment or not step.strip():
                errors.append(
                    f"LLM_STEP_OVERRIDES entry {item!r} must look like step=provider:model"
                )

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @staticmethod
    def _split(value: str) -> list[str]:
        return [v.strip() for v in value.split(",") if v.strip()]

    @property
    def skip_steps_list(self) -> list[str]:
        """Parse comma-separated step ids to skip."""
        return self._split(self.skip_steps)

    @property
    def llm_step_overrides_map(self) -> dict[str, str]:
        """Parse 'step=provider:model' pairs."""
        result: dict[str, str] = {}
        for item in self._split(self.llm_step_overrides):
            step, _, assignment = item.partition("=")
            result[step.strip()] = assignment.strip()
        return result


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (CLI flags, tests).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
