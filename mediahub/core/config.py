from pydantic_settings import BaseSettings
import os
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # API Configuration
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("PORT", os.getenv("API_PORT", "8080")))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:5173")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR: str = os.getenv("LOG_DIR", "logs")

    # Supabase (anon key only - row-level security decides what a viewer may touch)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")

    # Viewer sessions held by the API process
    SESSION_IDLE_TIMEOUT: int = int(os.getenv("SESSION_IDLE_TIMEOUT", "86400"))

    # Realtime change streams on media_likes / creator_follows
    ENABLE_REALTIME: bool = os.getenv("ENABLE_REALTIME", "true").lower() == "true"
    REALTIME_MAX_RETRIES: int = int(os.getenv("REALTIME_MAX_RETRIES", "3"))
    REALTIME_RETRY_DELAY: float = float(os.getenv("REALTIME_RETRY_DELAY", "2.0"))

    # Sign-up: the profile row is provisioned by a database trigger
    SIGNUP_PROFILE_POLL_ATTEMPTS: int = int(os.getenv("SIGNUP_PROFILE_POLL_ATTEMPTS", "5"))
    SIGNUP_PROFILE_POLL_MAX_DELAY: float = float(os.getenv("SIGNUP_PROFILE_POLL_MAX_DELAY", "2.0"))

    @property
    def cors_origins(self) -> list:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        case_sensitive = True
        extra = "ignore"


settings = Settings()
