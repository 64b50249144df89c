from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from typing import Optional

from wif_broker.shared.core.constants import DEFAULT_SCOPES, DEFAULT_DURATION_SECONDS


class Settings(BaseSettings):
    """
    Main configuration for the Workload Identity broker.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """
    APP_NAME: str = "GCP Workload Identity Federation"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # local, development, staging, production
    TESTING: bool = False

    # Public base URL of this service. It is the OIDC issuer and the audience
    # configured on the Workload Identity Provider.
    API_URL: str = "http://localhost:8000"

    # Google endpoints
    STS_TOKEN_URL: str = "https://sts.googleapis.com/v1/token"
    IAM_CREDENTIALS_URL: str = "https://iamcredentials.googleapis.com/v1"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Credential lifecycle
    REFRESH_BUFFER_SECONDS: int = 300  # Refresh 5 minutes before expiration
    REFRESH_INTERVAL_MINUTES: int = 10
    IDENTITY_TOKEN_TTL_SECONDS: int = 300
    RSA_KEY_SIZE: int = 2048

    # Persistence
    STORE_PROVIDER: str = "sql"  # Options: memory, sql
    DATABASE_URL: str = "sqlite+aiosqlite:///./wif_broker.db"

    # Admin API Key (host-directed resync endpoint)
    ADMIN_API_KEY: Optional[str] = None

    # Installation config used by the bundled host on startup/resync
    GCP_PROJECT_ID: Optional[str] = None
    GCP_SERVICE_ACCOUNT_EMAIL: Optional[str] = None
    GCP_WORKLOAD_IDENTITY_PROVIDER: Optional[str] = None
    GCP_SCOPES: list[str] = list(DEFAULT_SCOPES)
    GCP_TOKEN_DURATION_SECONDS: int = DEFAULT_DURATION_SECONDS

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("API_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        # Token iss/aud must equal the discovery issuer, which never ends in "/"
        return v.rstrip("/")

    @model_validator(mode='after')
    def validate_security_config(self) -> 'Settings':
        """Ensure the issuer URL and store are usable outside local development."""
        if self.TESTING:
            return self

        if self.STORE_PROVIDER not in ("memory", "sql"):
            raise ValueError(f"Invalid STORE_PROVIDER: {self.STORE_PROVIDER}. Use: memory, sql")

        if self.is_production:
            # Cloud providers refuse to fetch discovery documents over plain HTTP
            if not self.API_URL.startswith("https://"):
                raise ValueError("SECURITY ERROR: API_URL must use HTTPS in production.")
            if self.STORE_PROVIDER == "memory":
                raise ValueError("STORE_PROVIDER=memory loses key material on restart; use sql in production.")
            if self.ADMIN_API_KEY and len(self.ADMIN_API_KEY) < 32:
                raise ValueError("SECURITY ERROR: ADMIN_API_KEY must be at least 32 characters in production.")

        if self.RSA_KEY_SIZE < 2048:
            raise ValueError("RSA_KEY_SIZE must be at least 2048 bits.")

        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def installation_config(self) -> dict:
        """Installation config in the host's camelCase shape."""
        return {
            "projectId": self.GCP_PROJECT_ID,
            "serviceAccountEmail": self.GCP_SERVICE_ACCOUNT_EMAIL,
            "workloadIdentityProvider": self.GCP_WORKLOAD_IDENTITY_PROVIDER,
            "scopes": self.GCP_SCOPES,
            "durationSeconds": self.GCP_TOKEN_DURATION_SECONDS,
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()
