from __future__ import annotations

from typing import Literal

from pydantic import AnyHttpUrl, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

FIREBASE_JWKS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
)


class Settings(BaseSettings):
    ENVIRONMENT: Literal["development", "production", "test"] = "development"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./shopgate.db"
    DOCUMENT_STORE_BACKEND: Literal["sql", "memory"] = "sql"

    FIREBASE_PROJECT_ID: str
    FIREBASE_JWKS_URL: str = FIREBASE_JWKS_URL
    ENFORCE_INVITE_EMAIL: bool = True
    INVITATION_TTL_DAYS: int = Field(default=7, ge=1)

    APP_URL: AnyHttpUrl
    SHOPIFY_API_KEY: str = Field(min_length=1)
    SHOPIFY_API_SECRET: str = Field(min_length=1)
    SHOPIFY_WEBHOOK_SECRET: str | None = None
    SHOPIFY_SCOPES: str
    SHOPIFY_REQUEST_TIMEOUT_SECONDS: float = 20.0

    STATE_TTL_SECONDS: int = Field(default=600, ge=0)
    DATA_DIR: str = ".data"
    WEBHOOK_MAX_ENTRIES: int = Field(default=5000, ge=1)

    TOKEN_STORE_BACKEND: Literal["file", "secret_manager"] = "file"
    GCP_PROJECT_ID: str | None = None
    TOKEN_SECRET_PREFIX: str = "shopify-token-"
    GOOGLE_APPLICATION_CREDENTIALS: str | None = None

    @field_validator("SHOPIFY_SCOPES")
    @classmethod
    def validate_scopes(cls, value: str) -> str:
        scopes = [scope.strip() for scope in value.split(",") if scope.strip()]
        if not scopes:
            raise ValueError("SHOPIFY_SCOPES must include at least one scope")
        return ",".join(scopes)

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"Unsupported LOG_LEVEL: {value}")
        return level

    @model_validator(mode="after")
    def validate_token_store(self) -> "Settings":
        if self.TOKEN_STORE_BACKEND == "secret_manager" and not self.GCP_PROJECT_ID:
            raise ValueError("GCP_PROJECT_ID is required when TOKEN_STORE_BACKEND=secret_manager")
        return self

    @property
    def app_base_url(self) -> str:
        return str(self.APP_URL).rstrip("/")

    @property
    def oauth_redirect_uri(self) -> str:
        return f"{self.app_base_url}/oauth/callback"

    @property
    def webhook_secret(self) -> str:
        return self.SHOPIFY_WEBHOOK_SECRET or self.SHOPIFY_API_SECRET

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


def load_settings() -> Settings:
    return Settings()
