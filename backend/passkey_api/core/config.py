from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = "Passkey Auth"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_PATH: str = "./passkey.db"
    DATABASE_TIMEOUT: float = 5.0  # seconds, passed to sqlite's busy handler

    # API settings
    API_PREFIX: str = "/api"

    # CORS settings
    BACKEND_CORS_ORIGINS: list[str] = [
        "http://localhost:8080",
        "http://127.0.0.1:8080"
    ]

    # Relying party settings
    RP_ID: str = "localhost"
    RP_NAME: str = "Passkey"
    RP_ORIGINS: list[str] = ["http://localhost:8080"]
    REQUIRE_USER_VERIFICATION: bool = False
    CEREMONY_TIMEOUT_MS: int = 60000

    # Session settings
    CEREMONY_SESSION_SECONDS: int = 3600
    AUTH_SESSION_HOURS: int = 1
    SESSION_COOKIE_NAME: str = "sid"
    SESSION_COOKIE_PATH: str = "/api/passkey"
    AUTH_COOKIE_NAME: str = "auth_sid"
    COOKIE_SECURE: bool = True
    COOKIE_SAMESITE: str = "lax"
    COOKIE_DOMAIN: Optional[str] = None

    # Ceremony policy
    CLONE_WARNING_POLICY: str = "warn"  # warn, reject
    CREDENTIAL_SAVE_ATTEMPTS: int = 3
    CREDENTIAL_SAVE_BACKOFF: float = 0.1
    USERNAME_MAX_LENGTH: int = 64

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


settings = Settings()
