# concert/storage/__init__.py

from .provider import KeyValueStore, KVError
from .providers.memory_provider import InMemoryStorage
from .providers.consul_provider import ConsulStorage
from .identity_store import IdentityStore
from .cert_store import CertificateRecordStore
from concert.consul_http import ConsulHTTP
import os


def load_kv_provider(config: dict | None = None) -> KeyValueStore:
    """
    Factory resolver for selecting the runtime key-value backend.

        - consul (default)
        - memory
    """
    config = config or {}
    provider = config.get("provider") or os.getenv("CONCERT_KV_PROVIDER", "consul")

    if provider == "memory":
        return InMemoryStorage()

    if provider == "consul":
        address = config.get("consul_address") or os.getenv("CONCERT_CONSUL_ADDRESS", "127.0.0.1:8500")
        token = config.get("consul_token") or os.getenv("CONSUL_HTTP_TOKEN")
        return ConsulStorage(ConsulHTTP(address, token=token))

    raise ValueError(f"Unknown KV provider: {provider}")


__all__ = [
    "KeyValueStore",
    "KVError",
    "InMemoryStorage",
    "ConsulStorage",
    "IdentityStore",
    "CertificateRecordStore",
    "load_kv_provider",
]
