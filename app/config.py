from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./tourist_safety.db"
    DATABASE_ECHO: bool = False
    CREATE_TABLES_ON_STARTUP: bool = True

    # Security
    SECRET_KEY: str = "your-secret-key-here"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 240  # 4 hours
    PASSWORD_HASH_ITERATIONS: int = 120_000

    # Bootstrap administrator (created on startup when both are set)
    ADMIN_EMAIL: str = ""
    ADMIN_PASSWORD: str = ""

    # Geofencing
    GEOFENCE_RADIUS_M: float = 3000.0
    SAFETY_POLICY: str = "destination_and_hazard"  # or "hazard_only"
    ACTIVE_WINDOW_MINUTES: int = 5
    TRACKER_IDLE_MINUTES: int = 120
    TRACKER_PRUNE_INTERVAL_SECONDS: int = 600

    # Hazard zone feed (full replacement snapshots)
    HAZARD_FEED_URL: str = ""
    HAZARD_FEED_REFRESH_SECONDS: int = 300

    # Geocoding
    GEOCODER_URL: str = "https://nominatim.openstreetmap.org/search"
    GEOCODER_USER_AGENT: str = "tourist-safety-api/1.0 (contact: ops@example.com)"
    GEOCODER_TIMEOUT_SECONDS: float = 10.0

    # Responders
    RESPONDER_EMAILS: List[str] = []
    RESPONDER_WEBHOOK_URL: str = ""
    RESPONDER_WEBHOOK_TOKEN: str = ""
    HELPLINE_PHONE: str = "112"

    # Email
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    FROM_EMAIL: str = "noreply@tourist-safety.app"

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
