"""
Workload Identity app entry points.

The host owns the event loop and calls one of three transitions:

- on_sync: configuration saved, host-directed resync, or scheduler request
- on_http_request: inbound request for the discovery/JWKS endpoints
- on_scheduled_trigger: periodic expiry check

Each transition runs to completion on its own. The host guarantees that two
syncs never run concurrently for the same installation.
"""

from typing import Any, Mapping, Optional, Protocol, Union

import structlog
from pydantic import ValidationError

from wif_broker.modules.identity.domain.discovery import DiscoveryPublisher
from wif_broker.modules.identity.domain.exchange import FederatedCredentialExchanger
from wif_broker.modules.identity.domain.keys import KeyMaterialManager
from wif_broker.modules.identity.domain.lifecycle import CredentialLifecycleController
from wif_broker.modules.identity.domain.metrics import SCHEDULED_TRIGGER_RUNS
from wif_broker.modules.identity.domain.tokens import Clock, IdentityTokenIssuer, utc_now
from wif_broker.modules.identity.domain.validation import MISSING_PROJECT_ID, validate_config
from wif_broker.schemas.installation import InstallationConfig
from wif_broker.schemas.lifecycle import HTTPRequest, HTTPResponse, SyncResult
from wif_broker.shared.core.config import Settings, get_settings
from wif_broker.shared.core.constants import DISCOVERY_PATH, JWKS_PATH, InstallationStatus
from wif_broker.shared.core.crypto import CryptoProvider, RSACryptoProvider
from wif_broker.shared.core.exceptions import InternalError
from wif_broker.shared.store.base import KeyValueStore

logger = structlog.get_logger()

JSON_HEADERS = {"Content-Type": "application/json"}


class Host(Protocol):
    """Callbacks provided by the hosting runtime."""

    async def respond(self, request_id: str, response: HTTPResponse) -> None: ...

    async def request_sync(self) -> None: ...


class WorkloadIdentityApp:
    def __init__(
        self,
        store: KeyValueStore,
        host: Host,
        crypto: Optional[CryptoProvider] = None,
        exchanger: Optional[FederatedCredentialExchanger] = None,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.host = host
        self.crypto = crypto or RSACryptoProvider(key_size=self.settings.RSA_KEY_SIZE)
        self.keys = KeyMaterialManager(store, self.crypto)
        self.issuer = IdentityTokenIssuer(
            self.keys, self.crypto, clock=clock, ttl_seconds=self.settings.IDENTITY_TOKEN_TTL_SECONDS
        )
        self.exchanger = exchanger or FederatedCredentialExchanger(self.settings)
        self.controller = CredentialLifecycleController(
            store,
            self.crypto,
            self.keys,
            self.issuer,
            self.exchanger,
            clock=clock,
            buffer_seconds=self.settings.REFRESH_BUFFER_SECONDS,
        )
        self.discovery = DiscoveryPublisher(self.keys)

    async def on_sync(self, config: Union[InstallationConfig, Mapping[str, Any]], app_url: str) -> SyncResult:
        try:
            if not isinstance(config, InstallationConfig):
                try:
                    config = InstallationConfig.model_validate(dict(config))
                except ValidationError as e:
                    return SyncResult(
                        new_status=InstallationStatus.FAILED,
                        custom_status_description=f"Invalid configuration: {e.errors()[0]['msg']}",
                    )

            if not config.project_id:
                return SyncResult(new_status=InstallationStatus.FAILED, custom_status_description=MISSING_PROJECT_ID)

            # Keys must exist during setup: the operator points the provider at our JWKS
            await self.keys.ensure_key_pair()

            validation = validate_config(config)
            if not validation.can_refresh:
                logger.info("installation_not_ready", status=validation.status.value, reason=validation.message)
                return SyncResult(new_status=validation.status, custom_status_description=validation.message)

            credential = await self.controller.refresh(config, app_url)
            if credential is None:
                return SyncResult(new_status=InstallationStatus.READY)

            return SyncResult(new_status=InstallationStatus.READY, signal_updates=credential.to_signals())

        except Exception as e:
            logger.error("workload_identity_sync_failed", error=str(e), error_type=type(e).__name__)
            return SyncResult(
                new_status=InstallationStatus.FAILED,
                custom_status_description=f"Workload Identity sync failed: {e}",
            )

    async def handle_request(self, request: HTTPRequest, app_url: str) -> HTTPResponse:
        """Route a request; internal faults become a generic 500."""
        try:
            if request.path == DISCOVERY_PATH:
                return HTTPResponse(
                    status_code=200,
                    headers=dict(JSON_HEADERS),
                    body=self.discovery.discovery_document(app_url),
                )
            if request.path == JWKS_PATH:
                return HTTPResponse(status_code=200, headers=dict(JSON_HEADERS), body=await self.discovery.jwks())
            return HTTPResponse(status_code=404, headers=dict(JSON_HEADERS), body={"error": "Endpoint not found"})
        except Exception as e:
            fault = InternalError(details={"path": request.path, "cause": str(e)})
            logger.error("http_request_failed", code=fault.code, error_type=type(e).__name__, details=fault.details)
            return HTTPResponse(status_code=fault.status_code, headers=dict(JSON_HEADERS), body={"error": fault.message})

    async def on_http_request(self, request: HTTPRequest, app_url: str) -> None:
        response = await self.handle_request(request, app_url)
        await self.host.respond(request.request_id, response)

    async def on_scheduled_trigger(self) -> bool:
        """
        Request a full resync when the stored expiry is missing or inside the
        refresh buffer. Returns True when a resync was requested.
        """
        try:
            if await self.controller.expiry_buffer_crossed():
                logger.info("scheduled_refresh_triggered")
                SCHEDULED_TRIGGER_RUNS.labels(outcome="resync").inc()
                await self.host.request_sync()
                return True
            SCHEDULED_TRIGGER_RUNS.labels(outcome="noop").inc()
            return False
        except Exception as e:
            SCHEDULED_TRIGGER_RUNS.labels(outcome="error").inc()
            logger.error("scheduled_refresh_failed", error=str(e), error_type=type(e).__name__)
            return False
