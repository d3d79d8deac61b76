from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/loan_crm"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # Webhook auth (spreadsheet connector)
    API_KEY: str | None = None
    AGENT_USER_ID: str = "system-update"

    # CORS
    FRONTEND_URL: str = "http://localhost:3000"

    # Business time (Singapore, no DST)
    BUSINESS_UTC_OFFSET_HOURS: int = 8

    # Reconciliation
    LIVE_THRESHOLD_HOURS: float = 3.0
    TIME_SWEEP_THRESHOLD_HOURS: float = 2.5
    SLOT_LOOKAHEAD_DAYS: int = 0
    DEFAULT_LEAD_SOURCE: str = "SEO"

    # External collaborators
    EXTERNAL_TIMEOUT_SECONDS: float = 10.0
    ELIGIBILITY_API_URL: str | None = None
    ELIGIBILITY_API_KEY: str | None = None
    REJECTION_WEBHOOK_URL: str | None = None
    APPOINTMENT_WEBHOOK_URL: str | None = None

    # Background jobs
    SCHEDULER_ENABLED: bool = False
    END_OF_DAY_HOUR: int = 21
    TIMESLOT_GENERATION_DAYS: int = 14

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True

    @property
    def sqlalchemy_echo(self) -> bool:
        """Echo SQL only in local development."""
        return self.DEBUG and self.ENVIRONMENT == "development"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
