# event_curation/app/config.py
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # --- Core ---
    env: Literal["dev", "stage", "prod"] = Field(default="dev", alias="ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    environment: Optional[str] = Field(default=None, alias="ENVIRONMENT")

    # --- LangSmith ---
    langsmith_project: str = Field(default="event-curation", alias="LANGSMITH_PROJECT")
    langsmith_tracing: bool = Field(default=False, alias="LANGSMITH_TRACING")

    # --- Models ---
    llm_provider: Literal["openai", "vertexai"] = Field(
        default="openai", alias="LLM_PROVIDER"
    )
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    triage_model: str = Field(default="gpt-4o-mini", alias="TRIAGE_MODEL")
    escalate_model: str = Field(default="gpt-4o", alias="ESCALATE_MODEL")
    extraction_model: str = Field(default="gpt-4o", alias="EXTRACTION_MODEL")
    confidence_threshold: float = Field(default=0.7, alias="CONFIDENCE_THRESHOLD")
    classify_max_concurrent: int = Field(default=3, alias="CLASSIFY_MAX_CONCURRENT")
    embedding_model: str = Field(default="text-embedding-004", alias="EMBEDDING_MODEL")
    image_proxy_url: Optional[str] = Field(default=None, alias="IMAGE_PROXY_URL")

    # --- GCP ---
    google_cloud_project: Optional[str] = Field(
        default=None, alias="GOOGLE_CLOUD_PROJECT"
    )
    google_cloud_location: Optional[str] = Field(
        default=None, alias="GOOGLE_CLOUD_LOCATION"
    )
    firestore_database_id: str = Field(default="(default)", alias="FIRESTORE_DATABASE_ID")
    storage_bucket: Optional[str] = Field(default=None, alias="STORAGE_BUCKET")
    signed_url_ttl_minutes: int = Field(default=60, alias="SIGNED_URL_TTL_MINUTES")

    # --- Scrape provider (Apify) ---
    apify_api_token: Optional[str] = Field(default=None, alias="APIFY_API_TOKEN")
    apify_base_url: str = Field(default="https://api.apify.com", alias="APIFY_BASE_URL")
    apify_posts_actor: str = Field(
        default="apify~instagram-post-scraper", alias="APIFY_POSTS_ACTOR"
    )
    apify_stories_actor: str = Field(
        default="louisdeconinck~instagram-stories-scraper", alias="APIFY_STORIES_ACTOR"
    )
    scrape_webhook_url: Optional[str] = Field(default=None, alias="SCRAPE_WEBHOOK_URL")
    scrape_lookback_hours: int = Field(default=25, alias="SCRAPE_LOOKBACK_HOURS")

    # --- Scheduler ---
    auto_pipeline_batch_size: int = Field(default=5, alias="AUTO_PIPELINE_BATCH_SIZE")
    self_heal_sample_size: int = Field(default=50, alias="SELF_HEAL_SAMPLE_SIZE")
    stale_in_progress_minutes: int = Field(default=15, alias="STALE_IN_PROGRESS_MINUTES")

    # pydantic-settings config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level")
    @classmethod
    def normalize_level(cls, v: str, _: ValidationInfo) -> str:
        v2 = (v or "").upper()
        return v2 if v2 in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"} else "INFO"

    @field_validator("confidence_threshold")
    @classmethod
    def threshold_in_unit_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("CONFIDENCE_THRESHOLD must be between 0 and 1")
        return v

    @field_validator("classify_max_concurrent", "auto_pipeline_batch_size", "self_heal_sample_size")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        return max(1, v)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings (cached)."""
    return Settings()
