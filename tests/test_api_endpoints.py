from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient

from wif_broker.main import create_app
from wif_broker.modules.identity.domain.exchange import FederatedCredentialExchanger
from wif_broker.shared.core.config import Settings
from wif_broker.shared.store.memory import InMemoryStore

from conftest import ISSUER, PROJECT_ID, PROVIDER, SERVICE_ACCOUNT, FakeCrypto, GoogleStub

ADMIN_KEY = "test-admin-key-with-enough-length-0001"


@pytest.fixture
def api_google() -> GoogleStub:
    # The app runs on the wall clock, so the stubbed expiry must too
    expires = datetime.now(timezone.utc) + timedelta(hours=2)
    return GoogleStub(expire_time=expires.strftime("%Y-%m-%dT%H:%M:%SZ"))


@pytest.fixture
def client(settings, api_google):
    exchanger = FederatedCredentialExchanger(
        settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(api_google))
    )
    app = create_app(settings=settings, store=InMemoryStore(), crypto=FakeCrypto(), exchanger=exchanger)
    with TestClient(app, base_url=ISSUER) as test_client:
        yield test_client


def test_startup_sync_mints_credential(client, api_google):
    assert api_google.steps == ["sts", "iam"]
    host = client.app.state.host
    assert host.status.new_status.value == "ready"
    assert host.signals["accessToken"] == "ya29.service-account-token"


def test_health_endpoint(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "active"
    assert data["installation"] == "ready"
    assert data["scheduler"]["running"] is True
    assert data["scheduler"]["interval_minutes"] == 10


def test_discovery_endpoint(client):
    response = client.get("/.well-known/openid-configuration")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert response.json()["issuer"] == ISSUER
    assert response.json()["jwks_uri"] == f"{ISSUER}/.well-known/jwks"


def test_discovery_issuer_follows_request_host(client):
    response = client.get("https://tunnel.example.net/.well-known/openid-configuration")

    assert response.json()["issuer"] == "https://tunnel.example.net"
    assert response.json()["jwks_uri"] == "https://tunnel.example.net/.well-known/jwks"


def test_jwks_endpoint(client):
    response = client.get("/.well-known/jwks")

    assert response.status_code == 200
    keys = response.json()["keys"]
    assert len(keys) == 1
    assert set(keys[0]) == {"kid", "kty", "n", "e"}


def test_unknown_path_returns_404(client):
    response = client.post("/oauth/token")

    assert response.status_code == 404
    assert response.json() == {"error": "Endpoint not found"}


def test_request_id_is_echoed(client):
    response = client.get("/.well-known/jwks", headers={"X-Request-ID": "trace-123"})

    assert response.headers["X-Request-ID"] == "trace-123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_admin_sync_requires_key(client):
    assert client.post("/admin/sync").status_code == 422
    assert client.post("/admin/sync", headers={"X-Admin-Key": "wrong"}).status_code == 403


def test_admin_sync_reuses_valid_credential(client, api_google):
    response = client.post("/admin/sync", headers={"X-Admin-Key": ADMIN_KEY})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ready"
    assert body["expires_at"] == client.app.state.host.signals["expiresAt"]
    assert "accessToken" not in body
    # Cached credential is still valid, so no new exchange
    assert api_google.steps == ["sts", "iam"]


def test_admin_sync_unconfigured(settings, api_google):
    settings = settings.model_copy(update={"ADMIN_API_KEY": None})
    exchanger = FederatedCredentialExchanger(
        settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(api_google))
    )
    app = create_app(settings=settings, store=InMemoryStore(), crypto=FakeCrypto(), exchanger=exchanger)

    with TestClient(app, base_url=ISSUER) as client:
        response = client.post("/admin/sync", headers={"X-Admin-Key": ADMIN_KEY})

    assert response.status_code == 503


def test_metrics_endpoint(client):
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "wif_credential_refreshes_total" in response.text


def test_trailing_slash_api_url_matches_discovery_issuer(api_google):
    """The STS subject token's iss/aud must equal the served discovery issuer."""
    settings = Settings(
        TESTING=True,
        STORE_PROVIDER="memory",
        API_URL=f"{ISSUER}/",
        GCP_PROJECT_ID=PROJECT_ID,
        GCP_SERVICE_ACCOUNT_EMAIL=SERVICE_ACCOUNT,
        GCP_WORKLOAD_IDENTITY_PROVIDER=PROVIDER,
    )
    assert settings.API_URL == ISSUER

    exchanger = FederatedCredentialExchanger(
        settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(api_google))
    )
    app = create_app(settings=settings, store=InMemoryStore(), crypto=FakeCrypto(), exchanger=exchanger)

    with TestClient(app, base_url=ISSUER) as client:
        issuer = client.get("/.well-known/openid-configuration").json()["issuer"]

    claims = jwt.decode(api_google.sts_form()["subject_token"], options={"verify_signature": False})
    assert claims["iss"] == issuer
    assert claims["aud"] == issuer


def test_undelivered_response_is_internal_error(client):
    client.app.state.wif_app.on_http_request = AsyncMock(return_value=None)

    response = client.get("/.well-known/jwks")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error", "code": "internal_error"}
