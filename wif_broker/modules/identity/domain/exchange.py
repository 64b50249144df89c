"""
Federated credential exchange against Google Cloud.

Two strictly ordered calls:
1. STS token exchange: self-signed JWT -> federated access token
2. IAM Credentials generateAccessToken: federated token -> service account token

Either both succeed and a complete FederatedCredential is returned, or an
error is raised and nothing is produced. There is no retry here; the
periodic trigger re-invokes the lifecycle later.
"""

import time
from datetime import datetime
from typing import List, Optional

import httpx
import structlog

from wif_broker.modules.identity.domain.metrics import REMOTE_CALL_DURATION, REMOTE_CALL_FAILURES
from wif_broker.schemas.credentials import FederatedCredential
from wif_broker.shared.core.config import Settings, get_settings
from wif_broker.shared.core.constants import (
    GRANT_TYPE_TOKEN_EXCHANGE,
    IAM_RESOURCE_PREFIX,
    TOKEN_TYPE_ACCESS_TOKEN,
    TOKEN_TYPE_JWT,
)
from wif_broker.shared.core.exceptions import ExchangeError, ImpersonationError

logger = structlog.get_logger()


def provider_audience(provider_path: str) -> str:
    """Full resource name of the Workload Identity Provider, used as STS audience."""
    return f"{IAM_RESOURCE_PREFIX}{provider_path.lstrip('/')}"


def parse_expire_time(value: str) -> datetime:
    """Parse an RFC 3339 timestamp such as 2026-01-01T00:00:00Z (fractions allowed)."""
    value = value.strip()
    if value.endswith("Z") or value.endswith("z"):
        value = value[:-1] + "+00:00"
    # Google may return nanosecond precision; datetime supports microseconds
    if "." in value:
        head, _, rest = value.partition(".")
        digits = ""
        for ch in rest:
            if not ch.isdigit():
                break
            digits += ch
        value = f"{head}.{digits[:6].ljust(6, '0')}{rest[len(digits):]}"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"expireTime without timezone: {value}")
    return parsed


class FederatedCredentialExchanger:
    """Async client for the STS and IAM Credentials endpoints."""

    def __init__(self, settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._client = http_client

    async def exchange(
        self,
        self_signed_token: str,
        provider_path: str,
        target_identity: str,
        scopes: List[str],
        duration_seconds: int,
    ) -> FederatedCredential:
        if self._client is not None:
            return await self._exchange(self._client, self_signed_token, provider_path,
                                        target_identity, scopes, duration_seconds)

        async with httpx.AsyncClient(timeout=self.settings.HTTP_TIMEOUT_SECONDS) as client:
            return await self._exchange(client, self_signed_token, provider_path,
                                        target_identity, scopes, duration_seconds)

    async def _exchange(self, client, self_signed_token, provider_path, target_identity, scopes, duration_seconds):
        federated_token = await self.exchange_token(client, self_signed_token, provider_path, scopes)
        return await self.impersonate(client, federated_token, target_identity, scopes, duration_seconds)

    async def exchange_token(
        self,
        client: httpx.AsyncClient,
        self_signed_token: str,
        provider_path: str,
        scopes: List[str],
    ) -> str:
        """Step 1: trade the identity token for a federated access token."""
        data = {
            "grant_type": GRANT_TYPE_TOKEN_EXCHANGE,
            "audience": provider_audience(provider_path),
            "subject_token_type": TOKEN_TYPE_JWT,
            "requested_token_type": TOKEN_TYPE_ACCESS_TOKEN,
            "subject_token": self_signed_token,
            "scope": " ".join(scopes),
        }

        start = time.perf_counter()
        try:
            response = await client.post(
                self.settings.STS_TOKEN_URL,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            REMOTE_CALL_FAILURES.labels(step="sts").inc()
            logger.error("sts_exchange_transport_error", error=str(e))
            raise ExchangeError(None, str(e)) from e
        finally:
            REMOTE_CALL_DURATION.labels(step="sts").observe(time.perf_counter() - start)

        if not response.is_success:
            REMOTE_CALL_FAILURES.labels(step="sts").inc()
            logger.error("sts_exchange_failed", status_code=response.status_code, body=response.text[:500])
            raise ExchangeError(response.status_code, response.text)

        try:
            access_token = response.json()["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            REMOTE_CALL_FAILURES.labels(step="sts").inc()
            raise ExchangeError(response.status_code, f"Malformed STS response: {e}") from e

        logger.info("sts_exchange_succeeded", audience=data["audience"])
        return access_token

    async def impersonate(
        self,
        client: httpx.AsyncClient,
        federated_token: str,
        target_identity: str,
        scopes: List[str],
        duration_seconds: int,
    ) -> FederatedCredential:
        """Step 2: use the federated token to mint a service account access token."""
        url = (
            f"{self.settings.IAM_CREDENTIALS_URL.rstrip('/')}"
            f"/projects/-/serviceAccounts/{target_identity}:generateAccessToken"
        )

        start = time.perf_counter()
        try:
            response = await client.post(
                url,
                json={"scope": list(scopes), "lifetime": f"{duration_seconds}s"},
                headers={"Authorization": f"Bearer {federated_token}"},
            )
        except httpx.HTTPError as e:
            REMOTE_CALL_FAILURES.labels(step="impersonation").inc()
            logger.error("impersonation_transport_error", error=str(e))
            raise ImpersonationError(None, str(e)) from e
        finally:
            REMOTE_CALL_DURATION.labels(step="impersonation").observe(time.perf_counter() - start)

        if not response.is_success:
            REMOTE_CALL_FAILURES.labels(step="impersonation").inc()
            logger.error("impersonation_failed",
                         status_code=response.status_code,
                         service_account=target_identity,
                         body=response.text[:500])
            raise ImpersonationError(response.status_code, response.text)

        try:
            result = response.json()
            credential = FederatedCredential(
                access_token=result["accessToken"],
                expires_at=parse_expire_time(result["expireTime"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            REMOTE_CALL_FAILURES.labels(step="impersonation").inc()
            raise ImpersonationError(response.status_code, f"Malformed impersonation response: {e}") from e

        logger.info("impersonation_succeeded",
                    service_account=target_identity,
                    expires_at=credential.expires_at.isoformat())
        return credential
