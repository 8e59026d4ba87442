"""
Core settings and environment variables for Community Safety Alerts.
Uses pydantic-settings for type-safe environment variable loading.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Create a .env file in the root directory to configure these.
    """

    # Application
    APP_NAME: str = "Community Safety Alerts"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - dashboard origins allowed to call this API
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Firebase/Firestore
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None  # Path to service account JSON

    # Mock DB mode for local development without Firebase credentials
    USE_MOCK_DB: bool = False
    MOCK_DB_PATH: str = "./mock_db.json"

    # Roles - the single superadmin is identified by email, not by stored role
    SUPERADMIN_EMAIL: str = ""

    # Alert lifecycle
    ALERT_DEFAULT_TTL_MINUTES: int = 15
    ALERT_MIN_TTL_MINUTES: int = 1
    ALERT_MAX_TTL_MINUTES: int = 720
    ALERT_SMS_ON_CREATE: bool = True
    ALLOW_ANONYMOUS_VOTES: bool = True

    # SMS transport: "simulation" (log only) or "twilio"
    SMS_PROVIDER: str = "simulation"
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None
    SMS_TIMEOUT_SECONDS: float = 15.0

    # Optional reverse geocoding of alerts created without location labels
    GEOCODING_ENABLED: bool = False
    GEOCODING_USER_AGENT: str = "community-safety-alerts/1.0"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
