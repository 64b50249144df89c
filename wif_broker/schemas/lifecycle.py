from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from wif_broker.shared.core.constants import InstallationStatus


class SyncResult(BaseModel):
    """Result of a sync transition, reported back to the host."""
    new_status: InstallationStatus
    custom_status_description: Optional[str] = None
    signal_updates: Optional[Dict[str, Any]] = Field(default=None, repr=False)


class HTTPRequest(BaseModel):
    request_id: str
    path: str
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)


class HTTPResponse(BaseModel):
    status_code: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None
