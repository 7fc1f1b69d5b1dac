"""
Shared configuration management for the identity core.
"""

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias=AliasChoices("IDENTITY_ENV", "NODE_ENV", "env"))
    log_level: str = Field(default="info", validation_alias=AliasChoices("IDENTITY_LOG_LEVEL", "log_level"))

    # Project / service account
    project_id: str = Field(
        default="",
        validation_alias=AliasChoices("FIREBASE_PROJECT_ID", "NEXT_PUBLIC_FIREBASE_PROJECT_ID", "project_id"),
    )
    client_email: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("FIREBASE_CLIENT_EMAIL", "client_email")
    )
    private_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("FIREBASE_PRIVATE_KEY", "private_key")
    )

    # Identity tokens
    issuer_host: str = Field(default="securetoken.google.com", validation_alias=AliasChoices("IDENTITY_ISSUER_HOST", "issuer_host"))
    public_keys_url: str = Field(
        default="https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com",
        validation_alias=AliasChoices("IDENTITY_PUBLIC_KEYS_URL", "public_keys_url"),
    )
    key_cache_ttl: int = Field(default=3600, validation_alias=AliasChoices("IDENTITY_KEY_CACHE_TTL", "key_cache_ttl"))

    # OAuth2 / document store
    token_endpoint: str = Field(
        default="https://oauth2.googleapis.com/token",
        validation_alias=AliasChoices("IDENTITY_TOKEN_ENDPOINT", "token_endpoint"),
    )
    store_scope: str = Field(
        default="https://www.googleapis.com/auth/datastore",
        validation_alias=AliasChoices("IDENTITY_STORE_SCOPE", "store_scope"),
    )
    firestore_base_url: str = Field(
        default="https://firestore.googleapis.com/v1",
        validation_alias=AliasChoices("IDENTITY_FIRESTORE_BASE_URL", "firestore_base_url"),
    )
    token_refresh_margin: int = Field(
        default=300, validation_alias=AliasChoices("IDENTITY_TOKEN_REFRESH_MARGIN", "token_refresh_margin")
    )

    # HTTP
    http_timeout: float = Field(default=10.0, validation_alias=AliasChoices("IDENTITY_HTTP_TIMEOUT", "http_timeout"))

    @field_validator("project_id", mode="before")
    @classmethod
    def _strip_project_id(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("client_email", "private_key", mode="before")
    @classmethod
    def _strip_credentials(cls, value):
        # Blank environment values count as unset.
        if isinstance(value, str):
            return value.strip() or None
        return value

    @property
    def issuer(self) -> str:
        """Expected ``iss`` claim of identity tokens for this project."""
        return f"https://{self.issuer_host}/{self.project_id}"

    @property
    def documents_url(self) -> str:
        """Root URL of the project's default document database."""
        base = self.firestore_base_url.rstrip("/")
        return f"{base}/projects/{self.project_id}/databases/(default)/documents"


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
