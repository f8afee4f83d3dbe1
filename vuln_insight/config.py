import os
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

load_dotenv()

MAX_HISTORY_LIMIT = 50


def _env(name: str, default: Optional[str] = None):
    return lambda: os.getenv(name, default)


def _env_int(name: str, default: int):
    return lambda: int(os.getenv(name, str(default)))


def _env_float(name: str, default: float):
    return lambda: float(os.getenv(name, str(default)))


class Settings(BaseModel):
    openai_api_key: Optional[str] = Field(default_factory=_env("OPENAI_API_KEY"))
    openai_model: str = Field(default_factory=_env("OPENAI_MODEL", "gpt-4o-mini"))
    ai_temperature: float = Field(default_factory=_env_float("AI_TEMPERATURE", 0.3))
    ai_top_p: float = Field(default_factory=_env_float("AI_TOP_P", 0.8))
    ai_max_tokens: int = Field(default_factory=_env_int("AI_MAX_TOKENS", 4096))
    ai_timeout_seconds: float = Field(default_factory=_env_float("AI_TIMEOUT_SECONDS", 45))
    sample_rows: int = Field(default_factory=_env_int("SAMPLE_ROWS", 20))
    prompt_sample_chars: int = Field(default_factory=_env_int("PROMPT_SAMPLE_CHARS", 3000))
    # Empty selects the file backend
    database_url: Optional[str] = Field(default_factory=_env("DATABASE_URL"))
    storage_dir: str = Field(default_factory=_env("ANALYSIS_STORAGE_DIR", "./.analysis-cache"))
    cache_ttl_seconds: float = Field(default_factory=_env_float("CACHE_TTL_SECONDS", 3600))
    history_limit: int = Field(default_factory=_env_int("HISTORY_LIMIT", 50), validate_default=True)
    allowed_origins: List[str] = Field(
        default_factory=lambda: [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()]
    )
    use_mock_openai: bool = Field(default_factory=lambda: os.getenv("USE_MOCK_OPENAI", "0") in ("1", "true", "True"))
    app_version: str = Field(default_factory=_env("APP_VERSION", "v1"))

    @field_validator("history_limit")
    @classmethod
    def _cap_history_limit(cls, v: int) -> int:
        # history listing never returns more than 50 entries
        return max(1, min(v, MAX_HISTORY_LIMIT))


def get_settings() -> Settings:
    return Settings()
