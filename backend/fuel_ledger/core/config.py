"""
Application Configuration
"""
from pydantic_settings import BaseSettings
from typing import List
import warnings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Fuel Ledger API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./fuel_ledger.db"

    # Ledger
    CASH_LEDGER_OWNER_ID: int = 1  # cash in hand is a single shared ledger
    OPENING_BALANCE_PURPOSE: str = "Opening Balance"

    # CORS
    CORS_ORIGINS: str = "http://localhost:5000,http://127.0.0.1:5000"

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def database_url(self) -> str:
        """Get properly formatted database URL"""
        url = self.DATABASE_URL
        if url.startswith("file:"):
            path = url[5:]
            return f"sqlite:///{path}"
        return url

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.ENVIRONMENT.lower() == "production"

    def validate_settings(self):
        """Refuse unsafe combinations before the app starts"""
        if self.is_production and self.DEBUG:
            raise ValueError(
                "CRITICAL: DEBUG mode is enabled in production! "
                "Set DEBUG=False for production environment."
            )

        if self.is_production and self.database_url.startswith("sqlite"):
            warnings.warn(
                "WARNING: SQLite does not provide row-level locking. "
                "Concurrent ledger writes are only serialized per database file.",
                UserWarning
            )

        return True

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

try:
    settings.validate_settings()
except ValueError as e:
    if settings.is_production:
        raise
    else:
        warnings.warn(str(e), UserWarning)
