"""
Application configuration settings.
"""
import json
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings."""

    # Pydantic v2 settings configuration
    model_config = SettingsConfigDict(
        env_file=".env.server", case_sensitive=True, extra="ignore")

    PROJECT_NAME: str = "Receipt Verification Server"
    VERSION: str = "1.0.0"
    DESCRIPTION: str = "verifies App Store receipts and records redeemed transactions"

    API_V1_STR: str = "/api/v1"

    # Server settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = True

    # CORS settings (accept both comma-separated string and JSON list from env)
    BACKEND_CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:8080",
        "http://localhost:8000",
    ]

    # Apple receipt verification
    APPLE_SHARED_SECRET: str = ""
    APPLE_BUNDLE_ID: str = ""
    APPLE_RETRY_ENVIRONMENT: Literal["sandbox", "production"] = "sandbox"
    VERIFY_TIMEOUT_SECONDS: float = 10.0
    TRANSACTION_ORDERING: Literal["lexicographic", "numeric", "purchase_date"] = "lexicographic"

    # Redemption ledger
    LEDGER_BACKEND: Literal["supabase", "memory"] = "supabase"
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    LOGFIRE_TOKEN: Optional[str] = None

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors(cls, v):
        if v is None or v == "":
            return []
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                    if isinstance(parsed, list):
                        return [str(x).strip() for x in parsed]
                except json.JSONDecodeError:
                    # fall back to comma-splitting if JSON fails
                    pass
            return [part.strip() for part in s.split(",") if part.strip()]
        if isinstance(v, (list, tuple, set)):
            return [str(x).strip() for x in v]
        raise TypeError("BACKEND_CORS_ORIGINS must be a list or a string")


settings = Settings()
