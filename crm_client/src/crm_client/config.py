# src/crm_client/config.py

from pathlib import Path
from typing import Any, List, Optional, Union
from urllib.parse import urlparse

import structlog
from dotenv import load_dotenv
from pydantic import AnyHttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)

# Determine the base directory of this config file
# .env is at the project root, two levels up from src/crm_client/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=False)
    logger.debug("config.env_loaded", path=str(ENV_FILE_PATH))
else:
    logger.warning("config.env_missing", path=str(ENV_FILE_PATH),
                   detail="Relying on environment variables and defaults")


class Settings(BaseSettings):
    # === Backend service base URLs ===
    AUTH_URL: AnyHttpUrl = "http://localhost:8080"
    WALLET_URL: AnyHttpUrl = "http://localhost:8081"
    TRANSACTION_URL: AnyHttpUrl = "http://localhost:8082"
    LEDGER_URL: AnyHttpUrl = "http://localhost:8083"
    ANALYTICS_URL: AnyHttpUrl = "http://localhost:8084"

    REQUEST_TIMEOUT: float = 10.0

    # === Auth endpoints ===
    LOGIN_PATH: str = "/api/v1/login"
    REGISTER_PATH: str = "/api/v1/register"
    REFRESH_PATH: str = "/api/v1/refresh"
    ME_PATH: str = "/api/v1/me"
    # 401s from these paths are credential failures, never session expiry.
    # Empty means "login, register and refresh".
    EXEMPT_PATHS: Union[str, List[str]] = []

    # === Session handling ===
    LOGIN_SURFACE_PATH: str = "/login"
    APP_ORIGIN: AnyHttpUrl = "http://localhost:5173"
    REFRESH_TOKEN_MAX_AGE_DAYS: int = 7
    COOKIE_JAR_PATH: Optional[Path] = None

    # === Logging ===
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    @property
    def SERVICE_URLS(self) -> dict:
        return {
            "auth": str(self.AUTH_URL),
            "wallet": str(self.WALLET_URL),
            "transaction": str(self.TRANSACTION_URL),
            "ledger": str(self.LEDGER_URL),
            "analytics": str(self.ANALYTICS_URL),
        }

    @property
    def SECURE_ORIGIN(self) -> bool:
        return urlparse(str(self.APP_ORIGIN)).scheme == "https"

    @property
    def REFRESH_TOKEN_MAX_AGE(self) -> int:
        return self.REFRESH_TOKEN_MAX_AGE_DAYS * 24 * 60 * 60

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("EXEMPT_PATHS", mode="before")
    @classmethod
    def parse_comma_separated_paths(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [path.strip() for path in v.split(",") if path.strip()]
        if isinstance(v, (list, tuple)):
            return list(v)
        raise TypeError("EXEMPT_PATHS: Expected a comma-separated string or a list.")

    @model_validator(mode="after")
    def default_exempt_paths(self) -> "Settings":
        if not self.EXEMPT_PATHS:
            self.EXEMPT_PATHS = [self.LOGIN_PATH, self.REGISTER_PATH, self.REFRESH_PATH]
        if self.REFRESH_TOKEN_MAX_AGE_DAYS <= 0:
            raise ValueError("REFRESH_TOKEN_MAX_AGE_DAYS must be positive.")
        return self


settings = Settings()
