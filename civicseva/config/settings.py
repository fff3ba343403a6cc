import os
from typing import Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./civicseva.db")
    SUPABASE_URL: Optional[str] = os.getenv("SUPABASE_URL")
    SUPABASE_SERVICE_KEY: Optional[str] = os.getenv("SUPABASE_SERVICE_KEY")
    SUPABASE_JWT_SECRET: str = os.getenv("SUPABASE_JWT_SECRET", "change-me")
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    ROUTING_RULES_PATH: Optional[str] = os.getenv("ROUTING_RULES_PATH")
    GEOCODER: str = "nominatim"  # or "offline"
    GEOCODER_URL: str = "https://nominatim.openstreetmap.org/reverse"
    GEOCODER_TIMEOUT: float = 5.0

    MEDIA_BUCKET: str = "report-media"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    COMMUNITY_VERIFIED_THRESHOLD: int = 3
    TRENDING_DAYS: int = 30
    DUPLICATE_WINDOW_HOURS: int = 12

    AUTO_MIGRATE: bool = False
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
