from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central settings object.
    Values come from the environment; locally you can use backend/.env.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Structured annotator: "cloud" (Google Cloud Vision) or "mock"
    VISION_PROVIDER: Literal["cloud", "mock"] = "mock"
    GOOGLE_VISION_API_KEY: str = ""

    # Generative annotator
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_API_BASE: str = "https://api.openai.com/v1"

    # Product database
    OPENFOODFACTS_BASE_URL: str = "https://world.openfoodfacts.org"

    # Uploads
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Outbound calls
    REQUEST_TIMEOUT_SECONDS: float = 10.0
    MAX_RETRIES: int = 2
    MAX_SEARCH_CONCURRENCY: int = 8

    LOG_LEVEL: str = "INFO"

    # Versioning
    APP_VERSION: str = "0.1.0"
    BUILD_ID: str = "dev"


class ProviderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: Literal["cloud", "mock"] = "mock"
    api_key: Optional[str] = None


class PipelineConfig(BaseModel):
    """
    Everything the pipeline needs, passed in explicitly.
    Build it with from_settings() at the edge; nothing below reads the environment.
    """
    model_config = ConfigDict(frozen=True)

    vision: ProviderConfig = ProviderConfig()
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    openai_api_base: str = "https://api.openai.com/v1"
    product_db_url: str = "https://world.openfoodfacts.org"
    timeout_seconds: float = 10.0
    max_retries: int = 2
    max_search_concurrency: int = 8

    @classmethod
    def from_settings(cls, s: Settings) -> "PipelineConfig":
        return cls(
            vision=ProviderConfig(
                provider=s.VISION_PROVIDER,
                api_key=(s.GOOGLE_VISION_API_KEY or "").strip() or None,
            ),
            openai_api_key=(s.OPENAI_API_KEY or "").strip() or None,
            openai_model=(s.OPENAI_MODEL or "gpt-4o").strip() or "gpt-4o",
            openai_api_base=s.OPENAI_API_BASE.rstrip("/"),
            product_db_url=s.OPENFOODFACTS_BASE_URL.rstrip("/"),
            timeout_seconds=s.REQUEST_TIMEOUT_SECONDS,
            max_retries=max(0, s.MAX_RETRIES),
            max_search_concurrency=max(1, s.MAX_SEARCH_CONCURRENCY),
        )


settings = Settings()
