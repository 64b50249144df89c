import pytest

from wif_broker.modules.identity.domain.keys import KeyMaterialManager
from wif_broker.shared.core.constants import KVKey
from wif_broker.shared.core.exceptions import KeyGenerationError, KeyUnavailableError, SigningError
from wif_broker.shared.store.memory import InMemoryStore


class RecordingStore(InMemoryStore):
    def __init__(self, initial=None):
        super().__init__(initial)
        self.batches = []

    async def set_many(self, entries):
        self.batches.append(dict(entries))
        await super().set_many(entries)


@pytest.mark.asyncio
async def test_ensure_key_pair_is_idempotent(fake_crypto):
    store = RecordingStore()
    keys = KeyMaterialManager(store, fake_crypto)

    first = await keys.ensure_key_pair()
    second = await keys.ensure_key_pair()

    assert first == second
    assert fake_crypto.generated == 1
    assert len(store.batches) == 1


@pytest.mark.asyncio
async def test_key_pair_written_in_one_batch(fake_crypto):
    store = RecordingStore()
    pair = await KeyMaterialManager(store, fake_crypto).ensure_key_pair()

    assert set(store.batches[0]) == {KVKey.PRIVATE_KEY, KVKey.PUBLIC_KEY, KVKey.KEY_ID}
    assert pair.key_id == "id-1"
    assert "d" not in pair.public_key


@pytest.mark.asyncio
async def test_partial_pair_is_regenerated_whole(fake_crypto):
    """A store holding only part of a pair is treated as holding none."""
    store = InMemoryStore({KVKey.PUBLIC_KEY: {"kty": "RSA", "n": "orphan", "e": "AQAB"}})
    keys = KeyMaterialManager(store, fake_crypto)

    pair = await keys.ensure_key_pair()

    assert pair.public_key["n"] == "modulus-1"
    assert await store.get(KVKey.PRIVATE_KEY) == pair.private_key
    assert await store.get(KVKey.KEY_ID) == pair.key_id


@pytest.mark.asyncio
async def test_generation_failure_persists_nothing(fake_crypto):
    store = InMemoryStore()
    fake_crypto.fail_generation = True

    with pytest.raises(KeyGenerationError, match="entropy source unavailable"):
        await KeyMaterialManager(store, fake_crypto).ensure_key_pair()

    assert store.snapshot() == {}


@pytest.mark.asyncio
async def test_signing_key_missing(fake_crypto):
    with pytest.raises(SigningError, match="Private key or key ID not found"):
        await KeyMaterialManager(InMemoryStore(), fake_crypto).get_signing_key()


@pytest.mark.asyncio
async def test_verification_material(fake_crypto):
    keys = KeyMaterialManager(InMemoryStore(), fake_crypto)

    with pytest.raises(KeyUnavailableError, match="Public key or key ID not found"):
        await keys.get_verification_material()

    pair = await keys.ensure_key_pair()
    public_key, key_id = await keys.get_verification_material(pair.key_id)
    assert public_key == pair.public_key
    assert key_id == pair.key_id

    with pytest.raises(KeyUnavailableError, match="Unknown key ID"):
        await keys.get_verification_material("other-kid")
