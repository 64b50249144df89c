import hashlib
import json
import os
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

# Set test environment before any wif_broker imports read settings
os.environ["TESTING"] = "True"
os.environ["ENVIRONMENT"] = "development"
os.environ["STORE_PROVIDER"] = "memory"
os.environ["API_URL"] = "https://broker.example.com"

from wif_broker.modules.identity.domain.exchange import FederatedCredentialExchanger  # noqa: E402
from wif_broker.shared.core.config import Settings  # noqa: E402
from wif_broker.shared.core.crypto import RSACryptoProvider  # noqa: E402
from wif_broker.shared.store.memory import InMemoryStore  # noqa: E402

ISSUER = "https://broker.example.com"
PROJECT_ID = "acme-prod"
SERVICE_ACCOUNT = "broker@acme-prod.iam.gserviceaccount.com"
PROVIDER = "projects/123456789/locations/global/workloadIdentityPools/broker-pool/providers/broker"
NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeCrypto:
    """Deterministic crypto: fixed key material, readable signatures, counting ids."""

    def __init__(self):
        self.generated = 0
        self.ids = 0
        self.fail_generation = False

    def generate_key_pair(self):
        if self.fail_generation:
            raise RuntimeError("entropy source unavailable")
        self.generated += 1
        public = {"kty": "RSA", "n": f"modulus-{self.generated}", "e": "AQAB"}
        private = {**public, "d": f"private-{self.generated}"}
        return private, public

    def sign(self, private_jwk, data: bytes) -> bytes:
        return b"signed:" + hashlib.sha256(private_jwk["d"].encode() + data).digest()

    def digest(self, data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    def random_id(self) -> str:
        self.ids += 1
        return f"id-{self.ids}"


class GoogleStub:
    """
    httpx.MockTransport handler standing in for STS and IAM Credentials.
    Records every request so tests can assert call order and payloads.
    """

    def __init__(self, expire_time: str = "2026-10-18T14:00:00Z"):
        self.requests: list[httpx.Request] = []
        self.sts_status = 200
        self.sts_body: object = {"access_token": "federated-token", "token_type": "Bearer", "expires_in": 3600}
        self.iam_status = 200
        self.iam_body: object = {"accessToken": "ya29.service-account-token", "expireTime": expire_time}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "sts.googleapis.com":
            return self._reply(self.sts_status, self.sts_body)
        if request.url.host == "iamcredentials.googleapis.com":
            return self._reply(self.iam_status, self.iam_body)
        return httpx.Response(404, text="unexpected host")

    @staticmethod
    def _reply(status: int, body: object) -> httpx.Response:
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    @property
    def steps(self) -> list[str]:
        return ["sts" if r.url.host == "sts.googleapis.com" else "iam" for r in self.requests]

    def sts_form(self, index: int = 0) -> dict:
        sts = [r for r in self.requests if r.url.host == "sts.googleapis.com"][index]
        return {k: v[0] for k, v in parse_qs(sts.content.decode()).items()}

    def iam_request(self, index: int = 0) -> httpx.Request:
        return [r for r in self.requests if r.url.host == "iamcredentials.googleapis.com"][index]

    def iam_json(self, index: int = 0) -> dict:
        return json.loads(self.iam_request(index).content)


class RecordingHost:
    """Host double: keeps responses by request id and counts sync requests."""

    def __init__(self):
        self.responses = {}
        self.sync_requests = 0

    async def respond(self, request_id, response):
        self.responses[request_id] = response

    async def request_sync(self):
        self.sync_requests += 1


def installation(**overrides) -> dict:
    config = {
        "projectId": PROJECT_ID,
        "serviceAccountEmail": SERVICE_ACCOUNT,
        "workloadIdentityProvider": PROVIDER,
    }
    config.update(overrides)
    return config


@pytest.fixture
def settings() -> Settings:
    return Settings(
        TESTING=True,
        STORE_PROVIDER="memory",
        API_URL=ISSUER,
        ADMIN_API_KEY="test-admin-key-with-enough-length-0001",
        GCP_PROJECT_ID=PROJECT_ID,
        GCP_SERVICE_ACCOUNT_EMAIL=SERVICE_ACCOUNT,
        GCP_WORKLOAD_IDENTITY_PROVIDER=PROVIDER,
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def fake_crypto() -> FakeCrypto:
    return FakeCrypto()


@pytest.fixture(scope="session")
def rsa_crypto() -> RSACryptoProvider:
    return RSACryptoProvider()


@pytest.fixture
def google() -> GoogleStub:
    return GoogleStub()


@pytest.fixture
async def exchanger(settings, google):
    async with httpx.AsyncClient(transport=httpx.MockTransport(google)) as client:
        yield FederatedCredentialExchanger(settings, http_client=client)


@pytest.fixture
def host() -> RecordingHost:
    return RecordingHost()
