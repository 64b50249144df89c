"""
Cryptography capability for the OIDC issuer.

Key generation, signing, digests and random identifiers sit behind the
CryptoProvider interface so lifecycle code never calls a crypto engine
directly. RSACryptoProvider is the production implementation on top of
`cryptography` and PyJWT; tests substitute deterministic fakes.

Keys travel as JWK dictionaries (RFC 7518 §6.3) so that the public half can
be served from the JWKS endpoint without re-encoding.
"""

import hashlib
import uuid
from typing import Any, Dict, Protocol, Tuple

from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

JWK = Dict[str, Any]

PUBLIC_EXPONENT = 65537
PRIVATE_MEMBERS = ("d", "p", "q", "dp", "dq", "qi")

_RS256 = RSAAlgorithm(RSAAlgorithm.SHA256)


class CryptoProvider(Protocol):
    def generate_key_pair(self) -> Tuple[JWK, JWK]: ...
    def sign(self, private_jwk: JWK, data: bytes) -> bytes: ...
    def digest(self, data: bytes) -> str: ...
    def random_id(self) -> str: ...


class RSACryptoProvider:
    """RSASSA-PKCS1-v1_5 / SHA-256 over `cryptography` RSA keys."""

    def __init__(self, key_size: int = 2048):
        self.key_size = key_size

    def generate_key_pair(self) -> Tuple[JWK, JWK]:
        private_key = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=self.key_size)
        return (
            RSAAlgorithm.to_jwk(private_key, as_dict=True),
            RSAAlgorithm.to_jwk(private_key.public_key(), as_dict=True),
        )

    def sign(self, private_jwk: JWK, data: bytes) -> bytes:
        return _RS256.sign(data, RSAAlgorithm.from_jwk(private_jwk))

    def digest(self, data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    def random_id(self) -> str:
        return str(uuid.uuid4())
