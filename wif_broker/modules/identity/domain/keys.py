from typing import Optional, Tuple

import structlog

from wif_broker.schemas.credentials import KeyPair
from wif_broker.shared.core.constants import KVKey
from wif_broker.shared.core.crypto import CryptoProvider, JWK
from wif_broker.shared.core.exceptions import KeyGenerationError, KeyUnavailableError, SigningError
from wif_broker.shared.store.base import KeyValueStore

logger = structlog.get_logger()

KEY_PAIR_KEYS = (KVKey.PRIVATE_KEY, KVKey.PUBLIC_KEY, KVKey.KEY_ID)


class KeyMaterialManager:
    """
    Owns the single RSA key pair of the OIDC issuer.

    The pair is generated once and reused indefinitely. Private key, public
    key and key id are written in one atomic batch, so readers never see a
    partial pair.
    """

    def __init__(self, store: KeyValueStore, crypto: CryptoProvider):
        self.store = store
        self.crypto = crypto

    async def get_key_pair(self) -> Optional[KeyPair]:
        private_key, public_key, key_id = await self.store.get_many(KEY_PAIR_KEYS)
        if not private_key or not public_key or not key_id:
            return None
        return KeyPair(private_key=private_key, public_key=public_key, key_id=key_id)

    async def ensure_key_pair(self) -> KeyPair:
        existing = await self.get_key_pair()
        if existing is not None:
            return existing

        try:
            private_jwk, public_jwk = self.crypto.generate_key_pair()
            key_id = self.crypto.random_id()
        except Exception as e:
            logger.error("oidc_key_generation_failed", error=str(e))
            raise KeyGenerationError(f"RSA key generation failed: {e}") from e

        await self.store.set_many({
            KVKey.PRIVATE_KEY: private_jwk,
            KVKey.PUBLIC_KEY: public_jwk,
            KVKey.KEY_ID: key_id,
        })
        logger.info("oidc_key_pair_generated", kid=key_id)
        return KeyPair(private_key=private_jwk, public_key=public_jwk, key_id=key_id)

    async def get_signing_key(self) -> Tuple[JWK, str]:
        private_key, key_id = await self.store.get_many([KVKey.PRIVATE_KEY, KVKey.KEY_ID])
        if not private_key or not key_id:
            raise SigningError("Private key or key ID not found")
        return private_key, key_id

    async def get_verification_material(self, key_id: Optional[str] = None) -> Tuple[JWK, str]:
        public_key, stored_key_id = await self.store.get_many([KVKey.PUBLIC_KEY, KVKey.KEY_ID])
        if not public_key or not stored_key_id:
            raise KeyUnavailableError()
        if key_id is not None and key_id != stored_key_id:
            raise KeyUnavailableError(f"Unknown key ID: {key_id}")
        return public_key, stored_key_id
