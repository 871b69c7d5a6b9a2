from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # core
    ENV: str = "dev"
    API_PREFIX: str = "/api"

    # Celery broker/result backend and the user preference store.
    # Keep this as a plain string so redis:// URLs are always accepted
    REDIS_URL: str = "redis://localhost:6379/0"

    # external APIs
    OPENROUTER_API_KEY: str | None = None
    OPENAI_API_KEY: str | None = None

    # auth / security
    API_AUTH_KEY: str | None = None
    FRONTEND_ORIGIN: str | None = None
    # Explicit debug-only switch for wide-open CORS in non-prod envs
    CORS_ALLOW_ALL_ORIGINS: bool = False

    # llm
    LLM_MODEL: str = "gpt-5.1"
    # Company search may use a cheaper model; falls back to LLM_MODEL
    SEARCH_MODEL: str | None = None
    LLM_REASONING_EFFORT: str | None = "low"
    # Hard cap on concurrent LLM calls per process
    LLM_MAX_CONCURRENCY: int = 4
    LLM_PRICEBOOK_JSON: str | None = None
    WEB_SEARCH_PER_CALL_USD: float = 0.01

    # report generation
    SECTION_MAX_ATTEMPTS: int = 3
    # Linear backoff step: waits are 1x, 2x, 3x ... this value
    SECTION_RETRY_BACKOFF_SECONDS: float = 2.0
    REPORT_RESULT_TTL_SECONDS: int = 3600

    # preferences
    SEARCH_HISTORY_MAX_ITEMS: int = 5

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
