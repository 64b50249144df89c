from typing import Any, Dict

from wif_broker.modules.identity.domain.keys import KeyMaterialManager
from wif_broker.shared.core.constants import ALGORITHM, JWKS_PATH, KEY_TYPE


class DiscoveryPublisher:
    """
    Serves the provider-side half of JWT verification.
    Read-only: it never generates keys and only exposes public members.
    """

    def __init__(self, keys: KeyMaterialManager):
        self.keys = keys

    @staticmethod
    def discovery_document(issuer_url: str) -> Dict[str, Any]:
        """Standard OIDC discovery document, derived only from the issuer URL."""
        return {
            "issuer": issuer_url,
            "jwks_uri": f"{issuer_url.rstrip('/')}{JWKS_PATH}",
            "response_types_supported": ["id_token"],
            "subject_types_supported": ["pairwise", "public"],
            "id_token_signing_alg_values_supported": [ALGORITHM],
            "claims_supported": ["sub", "aud", "exp", "iat", "iss", "jti", "nbf"],
        }

    async def jwks(self) -> Dict[str, Any]:
        """Key set with only the fields a verifier needs."""
        public_key, key_id = await self.keys.get_verification_material()
        return {
            "keys": [
                {
                    "kid": key_id,
                    "kty": KEY_TYPE,
                    "n": public_key["n"],
                    "e": public_key["e"],
                }
            ]
        }
