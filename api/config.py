"""Service configuration from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://evfleet:evfleet@db:5432/evfleet"
    SQL_ECHO: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]

    TELEGRAM_BOT_TOKEN: str = ""

    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Fleet policies
    KYC_REQUIRED_DOCUMENTS: list[str] = ["aadhaar", "pan", "dl", "selfie"]
    REQUIRE_KYC_FOR_ASSIGNMENT: bool = False
    AUTO_UNASSIGN_ON_DEACTIVATION: bool = False
    DAMAGE_SEVERITY_THRESHOLD: str = "Moderate"  # Minor, Moderate, Major or "none"
    STRICT_DAMAGE_WORKFLOW: bool = False

    class Config:
        env_file = ".env"
        extra = "allow"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
