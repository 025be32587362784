"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the repository root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./kisheka.db"

    # Africa's Talking SMS gateway
    africastalking_api_key: str = ""
    africastalking_username: str = ""
    africastalking_sender_id: str = "KISHEKA"
    africastalking_base_url: str = "https://api.sandbox.africastalking.com/version1"
    africastalking_webhook_secret: str = ""
    africastalking_webhook_url: str = ""
    sms_enabled: bool = False
    default_country_code: str = "+254"

    # Purchase order automation
    auto_create_material_on_confirm: bool = False

    # CORS / Frontend
    cors_origins: str = "http://localhost:3000"
    app_url: str = ""

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def sms_configured(self) -> bool:
        """Check if Africa's Talking credentials are present."""
        return bool(self.africastalking_api_key and self.africastalking_username)


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
