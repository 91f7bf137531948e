# src/stream_stash_bff/config.py

from functools import lru_cache
from pathlib import Path
from typing import Any, List, Union

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env is at the project root, two levels up from src/stream_stash_bff/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=False)

DEFAULT_GOOGLE_AUTH_SCOPE = (
    "https://www.googleapis.com/auth/drive.appdata "
    "https://www.googleapis.com/auth/userinfo.email "
    "openid"
)

MIN_SESSION_SECRET_LENGTH = 32


class Settings(BaseSettings):
    # === Google OAuth application ===
    GOOGLE_CLIENT_ID: str
    GOOGLE_CLIENT_SECRET: str
    GOOGLE_AUTH_SCOPE: str = DEFAULT_GOOGLE_AUTH_SCOPE

    # === Frontend ===
    FRONTEND_BASE_URL: AnyHttpUrl
    # Comma separated in the environment, a list once validated
    CORS_ALLOW_ORIGINS: Union[str, List[str]] = []

    # === Session cookie ===
    SESSION_SECRET_KEY: str
    COOKIE_DOMAIN: str = "localhost"
    # Some browsers refuse secure cookies on http://localhost, disable in development
    COOKIE_SECURE: bool = True
    LOGOUT_CLEARS_COOKIE_ON_REVOKE_FAILURE: bool = True

    # === TMDB ===
    TMDB_READ_ACCESS_TOKEN: str

    # === Server ===
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    # === Outbound HTTP ===
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # === Logging ===
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def FRONTEND_ORIGIN(self) -> str:
        return str(self.FRONTEND_BASE_URL).rstrip("/")

    @property
    def REDIRECT_URL(self) -> str:
        return f"{self.FRONTEND_ORIGIN}/loginRedirect"

    @field_validator("SESSION_SECRET_KEY")
    @classmethod
    def check_secret_length(cls, v: str) -> str:
        if len(v) < MIN_SESSION_SECRET_LENGTH:
            raise ValueError(
                f"SESSION_SECRET_KEY must be at least {MIN_SESSION_SECRET_LENGTH} characters."
            )
        return v

    @field_validator("GOOGLE_AUTH_SCOPE")
    @classmethod
    def check_scope_not_empty(cls, v: str) -> str:
        if not v.split():
            raise ValueError("GOOGLE_AUTH_SCOPE must contain at least one scope.")
        return v

    @field_validator("CORS_ALLOW_ORIGINS", mode="before")
    @classmethod
    def parse_comma_separated_origins(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, list):
            return v
        raise TypeError("CORS_ALLOW_ORIGINS: Expected a comma-separated string or a list.")

    @model_validator(mode="after")
    def default_cors_to_frontend(self) -> "Settings":
        if not self.CORS_ALLOW_ORIGINS:
            self.CORS_ALLOW_ORIGINS = [self.FRONTEND_ORIGIN]
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load settings once per process.
    A missing required value raises pydantic's ValidationError, which aborts startup.
    """
    return Settings()
