from wif_broker.models.kv_entry import KVEntry

__all__ = ["KVEntry"]
