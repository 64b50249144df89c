from enum import Enum

ALGORITHM = "RS256"
KEY_TYPE = "RSA"

DEFAULT_SCOPES = ("https://www.googleapis.com/auth/cloud-platform",)
DEFAULT_DURATION_SECONDS = 3600

# OAuth 2.0 Token Exchange (RFC 8693) identifiers used against Google STS
GRANT_TYPE_TOKEN_EXCHANGE = "urn:ietf:params:oauth:grant-type:token-exchange"
TOKEN_TYPE_JWT = "urn:ietf:params:oauth:token-type:jwt"
TOKEN_TYPE_ACCESS_TOKEN = "urn:ietf:params:oauth:token-type:access_token"

# Resource name prefix for Workload Identity Provider audiences
IAM_RESOURCE_PREFIX = "//iam.googleapis.com/"
PROVIDER_SEGMENT = "/providers/"

DISCOVERY_PATH = "/.well-known/openid-configuration"
JWKS_PATH = "/.well-known/jwks"


class KVKey(str, Enum):
    """Keys in the installation key-value store."""
    PRIVATE_KEY = "privateKey"
    PUBLIC_KEY = "publicKey"
    KEY_ID = "keyId"
    EXPIRES_AT = "expiresAt"
    CONFIG_CHECKSUM = "configChecksum"


class InstallationStatus(str, Enum):
    READY = "ready"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"
