"""
Central feature flags. One file controls every external dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the engine uses a local fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────────
    use_s3: bool = Field(default=True, alias="FF_USE_S3")
    # ON  → Documents and versions live in S3. Needs AWS creds + S3_BUCKET_NAME.
    # OFF → Everything under LOCAL_STORAGE_PATH, metadata in a .meta side tree.

    # ── OCR ──────────────────────────────────────────────────────────
    use_ocr: bool = Field(default=False, alias="FF_USE_OCR")
    # ON  → Textract async text detection, polled up to ~40s.
    # OFF → Direct text read, then placeholder text.

    # ── Generative analysis ─────────────────────────────────────────
    use_llm: bool = Field(default=False, alias="FF_USE_LLM")
    # ON  → Model analysis for real (non-placeholder) text, model rewrites.
    # OFF → Rule table only.

    llm_provider: str = Field(default="gemini", alias="FF_LLM_PROVIDER")
    # "gemini" → Google Gemini (OpenAI-compatible endpoint). Needs GEMINI_API_KEY.
    # "aiml"   → AIML API proxy. Needs AIML_API_KEY.
    # "openai" → Direct OpenAI. Needs OPENAI_API_KEY.

    # ── Caller identity ─────────────────────────────────────────────
    require_caller: bool = Field(default=False, alias="FF_REQUIRE_CALLER")
    # ON  → Requests without an upstream caller id are rejected (401).
    # OFF → Anonymous "dev-user" caller.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
