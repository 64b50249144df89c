import json
from datetime import datetime, timezone
from typing import Callable, Dict, Any
from urllib.parse import urlparse

import structlog
from jwt.utils import base64url_encode

from wif_broker.modules.identity.domain.keys import KeyMaterialManager
from wif_broker.shared.core.constants import ALGORITHM
from wif_broker.shared.core.crypto import CryptoProvider
from wif_broker.shared.core.exceptions import SigningError

logger = structlog.get_logger()

IDENTITY_TOKEN_TTL_SECONDS = 300

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _encode_segment(obj: Dict[str, Any]) -> str:
    return base64url_encode(json.dumps(obj, separators=(",", ":")).encode("utf-8")).decode("ascii")


class IdentityTokenIssuer:
    """
    Builds the self-issued identity assertion presented to Google STS.

    The audience is the issuer URL itself, not a client id: the Workload
    Identity Provider is configured with this URL as its allowed audience and
    maps `attribute.aud = assertion.aud`.
    """

    def __init__(
        self,
        keys: KeyMaterialManager,
        crypto: CryptoProvider,
        clock: Clock = utc_now,
        ttl_seconds: int = IDENTITY_TOKEN_TTL_SECONDS,
    ):
        self.keys = keys
        self.crypto = crypto
        self.clock = clock
        self.ttl_seconds = ttl_seconds

    def build_claims(self, issuer_url: str) -> Dict[str, Any]:
        now = int(self.clock().timestamp())
        return {
            "iss": issuer_url,
            "sub": urlparse(issuer_url).hostname,
            "aud": issuer_url,
            "exp": now + self.ttl_seconds,
            "iat": now,
            "nbf": now,
            "jti": self.crypto.random_id(),
        }

    async def issue(self, issuer_url: str) -> str:
        """Return a compact RS256 JWT signed with the persisted private key."""
        private_key, key_id = await self.keys.get_signing_key()

        header = {"alg": ALGORITHM, "typ": "JWT", "kid": key_id}
        claims = self.build_claims(issuer_url)
        signing_input = f"{_encode_segment(header)}.{_encode_segment(claims)}"

        try:
            signature = self.crypto.sign(private_key, signing_input.encode("ascii"))
        except Exception as e:
            logger.error("identity_token_signing_failed", kid=key_id, error=str(e))
            raise SigningError(f"Identity token signing failed: {e}") from e

        logger.debug("identity_token_issued", kid=key_id, jti=claims["jti"], iss=issuer_url)
        return f"{signing_input}.{base64url_encode(signature).decode('ascii')}"
