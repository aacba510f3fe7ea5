# coffeevibes/core/config.py
# Environment-driven settings for the data service, location handling and search radii.

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "CoffeeVibes"
    VERSION: str = "0.3.0"
    BRIEF_DESCRIPTION: str = "Nearby coffee-shop discovery, favorites, visits and check-ins over a hosted data service."

    # --- Hosted data service ---
    SUPABASE_URL: str = Field("http://localhost:54321", description="Base URL of the hosted backend (REST, RPC and storage)")
    SUPABASE_ANON_KEY: Optional[str] = Field(None, description="Anonymous API key sent as 'apikey' and bearer token")
    ENV: str = Field("development", description="Application environment (e.g., production, development)")

    # Timeout for every call to the data service
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    # Requests slower than this are logged as warnings
    SLOW_REQUEST_MS: float = 2000.0

    # --- Search radii (miles) ---
    NEARBY_RADIUS_MILES: float = 10.0
    FAVORITES_RADIUS_MILES: float = 50.0

    # --- Location handling ---
    # Samples closer than this to the last accepted one are dropped
    LOCATION_MIN_MOVEMENT_METERS: float = 50.0
    # Bounded wait for a first fix before falling back to the unscoped list
    LOCATION_WAIT_TIMEOUT_SECONDS: float = 10.0

    # --- Per-user sessions ---
    MAX_SESSIONS: int = 10000
    SESSION_IDLE_SECONDS: float = 30 * 60

    # --- Object storage ---
    CHECKIN_PHOTO_BUCKET: str = "checkin-photos"
    PROFILE_PHOTO_BUCKET: str = "profile-photo-bucket"
    SIGNED_URL_TTL_SECONDS: int = 365 * 24 * 60 * 60

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @property
    def rest_url(self) -> str:
        return f"{self.SUPABASE_URL.rstrip('/')}/rest/v1"

    @property
    def storage_url(self) -> str:
        return f"{self.SUPABASE_URL.rstrip('/')}/storage/v1"

settings = Settings()
