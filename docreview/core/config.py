"""
Central configuration. All credentials and engine settings in one place.
"""

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Environment ---
    env: str = Field(default="development", alias="ENV")
    log_level: str = Field(default="info", alias="LOG_LEVEL")
    debug: bool = Field(default=False, alias="DEBUG")

    # --- AWS (S3 + Textract) ---
    aws_access_key_id: str = Field(default="", alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field(default="", alias="AWS_SECRET_ACCESS_KEY")
    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")
    s3_bucket_name: str = Field(default="contract-review-documents", alias="S3_BUCKET_NAME")

    # --- Local storage (FF_USE_S3=false) ---
    local_storage_path: str = Field(default="./local_storage", alias="LOCAL_STORAGE_PATH")

    # --- Versions ---
    version_key_prefix: str = Field(default="documents", alias="VERSION_KEY_PREFIX")

    # --- OCR ---
    ocr_poll_interval_seconds: float = Field(default=1.0, alias="OCR_POLL_INTERVAL_SECONDS")
    ocr_max_poll_attempts: int = Field(default=40, alias="OCR_MAX_POLL_ATTEMPTS")

    # --- LLM ---
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    aiml_api_key: str = Field(default="", alias="AIML_API_KEY")
    aiml_base_url: str = Field(default="https://api.aimlapi.com/v1", alias="AIML_BASE_URL")
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    default_llm_model: str = Field(default="gemini-2.5-flash", alias="DEFAULT_LLM_MODEL")
    default_llm_temperature: float = Field(default=0.0, alias="DEFAULT_LLM_TEMPERATURE")
    default_llm_max_tokens: int = Field(default=4096, alias="DEFAULT_LLM_MAX_TOKENS")

    # --- API ---
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging once. Shared by the API and the Lambda handler."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
