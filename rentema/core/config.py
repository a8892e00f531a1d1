"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    
    # Environment
    ENV: str = "dev"
    
    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.03.00"
    
    # Database
    DATABASE_URL: str
    
    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 4
    
    # CORS
    CORS_ORIGINS: str = "http://localhost:5173"
    
    # Frontend (booking and questionnaire links point here)
    FRONTEND_URL: str = "http://localhost:5173"
    
    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""
    
    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 60  # General API
    RATE_LIMIT_PUBLIC: int = 10  # Public booking/questionnaire mutations
    REDIS_URL: str = "redis://localhost:6379/0"  # Shared limiter storage
    TESTING: bool = False
    
    # Booking tokens
    BOOKING_TOKEN_TTL_HOURS: int = 168  # 7 days
    QUESTIONNAIRE_TOKEN_TTL_HOURS: int = 168
    
    # Slot offers sent automatically after qualification
    DEFAULT_OFFER_TYPE: str = "video_call"
    DEFAULT_SLOT_DURATION_MINUTES: int = 30
    OFFER_DAYS_AHEAD: int = 7
    OFFER_MAX_SLOTS: int = 10
    
    # Default timezone for managers without one
    DEFAULT_TIMEZONE: str = "America/Los_Angeles"
    
    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
    
    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets


settings = Settings()
