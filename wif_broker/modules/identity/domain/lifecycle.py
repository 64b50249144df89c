import json
from datetime import datetime, timedelta
from typing import Optional

import structlog

from wif_broker.modules.identity.domain.exchange import FederatedCredentialExchanger
from wif_broker.modules.identity.domain.keys import KeyMaterialManager
from wif_broker.modules.identity.domain.metrics import CREDENTIAL_REFRESHES
from wif_broker.modules.identity.domain.tokens import Clock, IdentityTokenIssuer, utc_now
from wif_broker.modules.identity.domain.validation import validate_config
from wif_broker.schemas.credentials import FederatedCredential, RefreshDecision, RefreshState
from wif_broker.schemas.installation import InstallationConfig
from wif_broker.shared.core.constants import KVKey
from wif_broker.shared.core.crypto import CryptoProvider
from wif_broker.shared.core.exceptions import ConfigurationError
from wif_broker.shared.store.base import KeyValueStore

logger = structlog.get_logger()

REFRESH_BUFFER_SECONDS = 300


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def refresh_reason(
    expires_at_ms: Optional[int],
    stored_checksum: Optional[str],
    current_checksum: str,
    now: datetime,
    buffer_seconds: int = REFRESH_BUFFER_SECONDS,
) -> Optional[str]:
    """
    Return the refresh reason, or None when the cached credential is still good.

    A checksum mismatch forces rotation even with time remaining, so the
    cached token always belongs to the current service account and scopes.
    """
    if not expires_at_ms:
        return "no_expiry"
    if expires_at_ms < to_epoch_ms(now + timedelta(seconds=buffer_seconds)):
        return "expiring"
    if stored_checksum != current_checksum:
        return "config_changed"
    return None


def needs_refresh(
    expires_at_ms: Optional[int],
    stored_checksum: Optional[str],
    current_checksum: str,
    now: datetime,
    buffer_seconds: int = REFRESH_BUFFER_SECONDS,
) -> bool:
    return refresh_reason(expires_at_ms, stored_checksum, current_checksum, now, buffer_seconds) is not None


class CredentialLifecycleController:
    """
    Decides whether the cached credential must be replaced and orchestrates
    key provisioning, token issuance and the remote exchange when it does.

    Nothing is persisted unless the whole chain succeeds; a failed attempt
    leaves the previous RefreshState (and thus the previous credential)
    authoritative until the next attempt.
    """

    def __init__(
        self,
        store: KeyValueStore,
        crypto: CryptoProvider,
        keys: KeyMaterialManager,
        issuer: IdentityTokenIssuer,
        exchanger: FederatedCredentialExchanger,
        clock: Clock = utc_now,
        buffer_seconds: int = REFRESH_BUFFER_SECONDS,
    ):
        self.store = store
        self.crypto = crypto
        self.keys = keys
        self.issuer = issuer
        self.exchanger = exchanger
        self.clock = clock
        self.buffer_seconds = buffer_seconds

    def config_checksum(self, config: InstallationConfig) -> str:
        canonical = json.dumps(config.checksum_payload(), sort_keys=True, separators=(",", ":"))
        return self.crypto.digest(canonical.encode("utf-8"))

    async def load_state(self) -> RefreshState:
        expires_at, checksum = await self.store.get_many([KVKey.EXPIRES_AT, KVKey.CONFIG_CHECKSUM])
        return RefreshState(expires_at=expires_at, config_checksum=checksum)

    async def decide(self, config: InstallationConfig) -> RefreshDecision:
        state = await self.load_state()
        current_checksum = self.config_checksum(config)
        reason = refresh_reason(
            state.expires_at, state.config_checksum, current_checksum, self.clock(), self.buffer_seconds
        )
        return RefreshDecision(
            needs_refresh=reason is not None,
            reason=reason,
            current_checksum=current_checksum,
            state=state,
        )

    async def refresh(
        self,
        config: InstallationConfig,
        issuer_url: str,
        force: bool = False,
    ) -> Optional[FederatedCredential]:
        """
        Mint and persist a new credential when needed.
        Returns None when the cached credential is still valid.
        """
        validation = validate_config(config)
        if not validation.can_refresh:
            raise ConfigurationError(validation.message, details={"status": validation.status.value})

        decision = await self.decide(config)
        if not decision.needs_refresh and not force:
            CREDENTIAL_REFRESHES.labels(status="skipped").inc()
            logger.debug("credential_refresh_skipped", expires_at=decision.state.expires_at)
            return None

        logger.info("credential_refresh_started", reason=decision.reason or "forced")
        try:
            await self.keys.ensure_key_pair()
            identity_token = await self.issuer.issue(issuer_url)
            credential = await self.exchanger.exchange(
                identity_token,
                config.workload_identity_provider,
                config.service_account_email,
                config.scopes,
                config.duration_seconds,
            )
        except Exception as e:
            CREDENTIAL_REFRESHES.labels(status="failed").inc()
            logger.error("credential_refresh_failed", error=str(e), error_type=type(e).__name__)
            raise

        await self.store.set_many({
            KVKey.EXPIRES_AT: credential.expires_at_ms,
            KVKey.CONFIG_CHECKSUM: decision.current_checksum,
        })
        CREDENTIAL_REFRESHES.labels(status="success").inc()
        logger.info("credential_refresh_succeeded",
                    service_account=config.service_account_email,
                    expires_at=credential.expires_at.isoformat())
        return credential

    async def expiry_buffer_crossed(self) -> bool:
        """Periodic check: only the stored expiry matters, config is not consulted."""
        expires_at = await self.store.get(KVKey.EXPIRES_AT)
        if not expires_at:
            return True
        threshold = to_epoch_ms(self.clock() + timedelta(seconds=self.buffer_seconds))
        return expires_at < threshold
