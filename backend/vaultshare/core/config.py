import os
from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Explicitly load .env file before defining Settings
env_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env")
load_dotenv(env_path)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    PROJECT_NAME: str = "VaultShare"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Database
    SQLALCHEMY_DATABASE_URI: str = "sqlite:///./vaultshare.db"

    # Identity (tokens are issued by the login service)
    SECRET_KEY: str = "YOUR_SECRET_KEY_HERE"
    ALGORITHM: str = "HS256"
    TOKEN_URL: str = "/api/v1/login/access-token"

    # Links
    FRONTEND_URL: str = "http://localhost:5173"

    # Storage
    UPLOAD_DIR: str = os.path.join(os.getcwd(), "upload_storage")
    # List of paths for blob storage. Comma separated string in env, parsed to list.
    STORAGE_PATHS_STR: str = ""

    # Preview cache
    PREVIEW_CACHE_TTL: int = 60
    PREVIEW_CACHE_URL: str = ""

    # Expiry sweeper
    SWEEP_ENABLED: bool = True
    SWEEP_INTERVAL_SECONDS: int = 180

    # Email
    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: str = ""
    MAIL_FROM: str = "noreply@vaultshare.io"
    MAIL_PORT: int = 587
    MAIL_SERVER: str = "localhost"
    MAIL_FROM_NAME: str = "VaultShare"
    MAIL_STARTTLS: bool = True
    MAIL_SSL_TLS: bool = False
    USE_CREDENTIALS: bool = True
    VALIDATE_CERTS: bool = True
    MAIL_SUPPRESS_SEND: bool = False

    @property
    def STORAGE_PATHS(self) -> List[str]:
        paths = [self.UPLOAD_DIR]
        if self.STORAGE_PATHS_STR:
            # Handle potential quote wrapping from env file parsing
            raw_str = self.STORAGE_PATHS_STR.strip('"\'')
            extra_paths = [p.strip() for p in raw_str.split(",") if p.strip()]
            paths.extend(extra_paths)
        return paths


settings = Settings()
