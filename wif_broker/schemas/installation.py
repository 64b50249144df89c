from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from wif_broker.shared.core.constants import DEFAULT_SCOPES, DEFAULT_DURATION_SECONDS, InstallationStatus


class InstallationConfig(BaseModel):
    """
    Installation configuration supplied by the host.

    Accepts the host's camelCase keys (projectId, serviceAccountEmail, ...)
    as well as snake_case. The service account and provider path stay empty
    until the operator has created the Workload Identity Pool.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    project_id: Optional[str] = Field(None, description="GCP Project ID")
    service_account_email: Optional[str] = Field(None, description="Service account to impersonate")
    workload_identity_provider: Optional[str] = Field(
        None,
        description="projects/PROJECT_NUMBER/locations/global/workloadIdentityPools/POOL_ID/providers/PROVIDER_ID",
    )
    scopes: List[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    duration_seconds: int = Field(DEFAULT_DURATION_SECONDS, gt=0, description="Access token lifetime")

    @field_validator("project_id", "service_account_email", "workload_identity_provider", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("scopes", mode="before")
    @classmethod
    def default_scopes(cls, v):
        if not v:
            return list(DEFAULT_SCOPES)
        return v

    @field_validator("duration_seconds", mode="before")
    @classmethod
    def default_duration(cls, v):
        return DEFAULT_DURATION_SECONDS if v is None else v

    def checksum_payload(self) -> dict:
        """Normalized view hashed for config drift detection."""
        return self.model_dump(by_alias=True)


class ConfigValidation(BaseModel):
    """Outcome of setup-phase validation, before any remote call."""
    status: InstallationStatus
    message: Optional[str] = None

    @property
    def can_refresh(self) -> bool:
        return self.status == InstallationStatus.READY
