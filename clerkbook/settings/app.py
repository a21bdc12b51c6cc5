"""Application settings powered by Pydantic BaseSettings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from clerkbook.fetch.config import FetchConfig
from clerkbook.fetch.constants import DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT
from clerkbook.ledger.models import DEFAULT_PLANS, CreditCosts, PlanConfig
from clerkbook.llm.gemini_client import DEFAULT_MODEL
from clerkbook.settings.plans import load_plan_catalog


# Upload size cap for file captures.
DEFAULT_MAX_UPLOAD_BYTES = 20 * 1024 * 1024


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
    )

    db_path: Path = Field(
        default=Path("clerkbook.db"), validation_alias="CLERKBOOK_DB_PATH"
    )
    files_dir: Path = Field(
        default=Path("clerkbook-files"), validation_alias="CLERKBOOK_FILES_DIR"
    )
    gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
    gemini_model: str = Field(
        default=DEFAULT_MODEL, validation_alias="CLERKBOOK_GEMINI_MODEL"
    )
    llm_timeout_seconds: float = Field(
        default=60.0, gt=0, validation_alias="CLERKBOOK_LLM_TIMEOUT_SECONDS"
    )
    fetch_timeout_seconds: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS,
        gt=0,
        le=120,
        validation_alias="CLERKBOOK_FETCH_TIMEOUT_SECONDS",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT, min_length=1, validation_alias="CLERKBOOK_USER_AGENT"
    )
    stale_job_minutes: int = Field(
        default=30, ge=1, validation_alias="CLERKBOOK_STALE_JOB_MINUTES"
    )
    max_upload_bytes: int = Field(
        default=DEFAULT_MAX_UPLOAD_BYTES,
        ge=1,
        validation_alias="CLERKBOOK_MAX_UPLOAD_BYTES",
    )
    default_plan: str = Field(default="free", validation_alias="CLERKBOOK_DEFAULT_PLAN")
    plans_path: Path | None = Field(default=None, validation_alias="CLERKBOOK_PLANS_PATH")
    cost_enrich_full: int = Field(
        default=2, ge=1, validation_alias="CLERKBOOK_COST_ENRICH_FULL"
    )
    cost_enrich_tags_only: int = Field(
        default=1, ge=1, validation_alias="CLERKBOOK_COST_ENRICH_TAGS_ONLY"
    )
    cost_compare: int = Field(default=3, ge=1, validation_alias="CLERKBOOK_COST_COMPARE")

    def credit_costs(self) -> CreditCosts:
        """Build the credit cost table."""
        return CreditCosts(
            enrich_item_full=self.cost_enrich_full,
            enrich_item_tags_only=self.cost_enrich_tags_only,
            compare_items=self.cost_compare,
        )

    def fetch_config(self) -> FetchConfig:
        """Build the URL fetch configuration."""
        return FetchConfig(
            user_agent=self.user_agent,
            timeout_seconds=self.fetch_timeout_seconds,
        )

    def plans(self) -> dict[str, PlanConfig]:
        """Load the plan catalog, falling back to the built-in plans."""
        if self.plans_path is None:
            return dict(DEFAULT_PLANS)

        return load_plan_catalog(self.plans_path)


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
