from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Literal


ParsePolicy = Literal["fail", "fallback"]


class Settings(BaseSettings):
    # core
    ENV: str = "dev"
    API_PREFIX: str = "/api"
    PORT: int = 3001

    # database & redis
    # Plain strings so sqlite:// (tests, local) and postgresql:// URLs both pass
    DATABASE_URL: str = "sqlite:///./linkify.db"
    # Optional: enables cross-process in-flight locks for enrichment calls
    REDIS_URL: str | None = None

    # completion endpoint (OpenAI-compatible, Perplexity by default)
    PERPLEXITY_API_KEY: str | None = None
    LLM_BASE_URL: str = "https://api.perplexity.ai"
    LLM_MODEL: str = "sonar-pro"
    LLM_TEMPERATURE: float = 0.2
    LLM_TOP_P: float = 0.9
    LLM_TIMEOUT_SECONDS: float = 120.0
    # Hard cap on concurrent completion calls per process
    LLM_MAX_CONCURRENCY: int = 4

    # what to do when a completion cannot be parsed, per call site
    ACCOUNT_ANALYSIS_PARSE_POLICY: ParsePolicy = "fail"
    COMPANY_ANALYSIS_PARSE_POLICY: ParsePolicy = "fail"
    PERSON_ANALYSIS_PARSE_POLICY: ParsePolicy = "fallback"

    # auth / security
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_DAYS: int = 7
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_CALLBACK_URL: str | None = None
    GOOGLE_TIMEOUT_SECONDS: float = 15.0

    # CORS
    FRONTEND_URL: str | None = None
    EXTENSION_ID: str | None = None
    # Explicit debug-only switch for wide-open CORS in non-prod envs
    CORS_ALLOW_ALL_ORIGINS: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
