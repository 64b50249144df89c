from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class KeyPair(BaseModel):
    """Signing key pair of the OIDC issuer, as persisted (JWK dictionaries)."""
    model_config = ConfigDict(frozen=True)

    private_key: Dict[str, Any] = Field(repr=False)
    public_key: Dict[str, Any]
    key_id: str


class FederatedCredential(BaseModel):
    """Short-lived access token for the impersonated service account."""
    model_config = ConfigDict(frozen=True)

    access_token: str = Field(repr=False)
    expires_at: datetime

    @property
    def expires_at_ms(self) -> int:
        return int(self.expires_at.timestamp() * 1000)

    def to_signals(self) -> Dict[str, Any]:
        return {"accessToken": self.access_token, "expiresAt": self.expires_at_ms}


class RefreshState(BaseModel):
    """Persisted inputs of the refresh decision."""
    expires_at: Optional[int] = None  # epoch milliseconds
    config_checksum: Optional[str] = None


class RefreshDecision(BaseModel):
    needs_refresh: bool
    reason: Optional[str] = None  # no_expiry | expiring | config_changed
    current_checksum: str
    state: RefreshState
