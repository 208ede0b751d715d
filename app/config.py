"""Application configuration settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database - shared with the main CalmTunes application
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "calmtunes"

    # Application
    APP_NAME: str = "CalmTunes Chat"
    API_V1_PREFIX: str = "/api/v1"
    PORT: int = 8002

    # CORS - allow the web frontends
    BACKEND_CORS_ORIGINS: str = '["http://localhost:3000", "http://localhost:3001"]'

    # Authentication (tokens are issued by the main application)
    JWT_SECRET_KEY: str = "change-this-secret-key"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Socket.IO
    SOCKET_CORS_ORIGINS: str = "*"
    SOCKET_REQUIRE_TOKEN: bool = False  # False trusts declared user_id/role on "authenticate"

    # Paging and previews
    MESSAGE_PAGE_SIZE: int = 50
    MESSAGE_PAGE_MAX: int = 100
    NOTIFICATION_PAGE_SIZE: int = 20
    NOTIFICATION_PAGE_MAX: int = 50
    MESSAGE_PREVIEW_LENGTH: int = 50

    # Web Push (optional)
    VAPID_PUBLIC_KEY: Optional[str] = None
    VAPID_PRIVATE_KEY: Optional[str] = None
    VAPID_CLAIM_EMAIL: str = "support@calmtunes.app"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from shared .env
    )

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from JSON string."""
        try:
            return json.loads(self.BACKEND_CORS_ORIGINS)
        except ValueError:
            return ["http://localhost:3000"]

    @property
    def socket_cors_origins(self):
        """Socket.IO accepts either "*" or a list of origins."""
        if self.SOCKET_CORS_ORIGINS == "*":
            return "*"
        try:
            return json.loads(self.SOCKET_CORS_ORIGINS)
        except ValueError:
            return [self.SOCKET_CORS_ORIGINS]


settings = Settings()
