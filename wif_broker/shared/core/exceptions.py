from typing import Optional, Dict, Any


class BrokerException(Exception):
    """Base exception for all broker errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class ConfigurationError(BrokerException):
    """Raised when installation configuration is missing or malformed."""
    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=400, details=details)


class KeyGenerationError(BrokerException):
    """Raised when the RSA key pair cannot be generated or exported."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="key_generation_error", status_code=500, details=details)


class SigningError(BrokerException):
    """Raised when the identity token cannot be signed (e.g. no key material yet)."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="signing_error", status_code=500, details=details)


class UpstreamError(BrokerException):
    """
    Raised when a Google endpoint rejects a request.
    The upstream status and body are embedded in the message so the failure
    is visible in the installation status.
    """
    prefix = "Upstream request failed"

    def __init__(self, upstream_status: Optional[int], body: str, code: str = "upstream_error"):
        self.upstream_status = upstream_status
        self.body = body
        status = upstream_status if upstream_status is not None else "error"
        super().__init__(
            f"{self.prefix}: {status} {body}".rstrip(),
            code=code,
            status_code=502,
            details={"upstream_status": upstream_status},
        )


class ExchangeError(UpstreamError):
    """Raised when the STS token exchange fails."""
    prefix = "GCP STS token exchange failed"

    def __init__(self, upstream_status: Optional[int], body: str):
        super().__init__(upstream_status, body, code="exchange_error")


class ImpersonationError(UpstreamError):
    """Raised when service account impersonation fails."""
    prefix = "Service account impersonation failed"

    def __init__(self, upstream_status: Optional[int], body: str):
        super().__init__(upstream_status, body, code="impersonation_error")


class KeyUnavailableError(BrokerException):
    """Raised when public key material is requested before it exists."""
    def __init__(self, message: str = "Public key or key ID not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="key_unavailable", status_code=500, details=details)


class InternalError(BrokerException):
    """Raised for unexpected faults at a request boundary; details are logged, never returned."""
    def __init__(self, message: str = "Internal server error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="internal_error", status_code=500, details=details)
