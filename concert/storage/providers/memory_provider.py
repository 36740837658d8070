from typing import Dict, List, Optional, Tuple
import threading
from concert.storage.provider import KeyValueStore


class InMemoryStorage(KeyValueStore):
    name = "memory"

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self.data: Dict[str, bytes] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self.data.get(key)

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self.data[key] = bytes(value)

    def put_many(self, items: Dict[str, bytes]) -> None:
        with self._lock:
            for key, value in items.items():
                self.data[key] = bytes(value)

    def list_by_prefix(self, prefix: str) -> List[Tuple[str, bytes]]:
        with self._lock:
            return sorted((k, v) for k, v in self.data.items() if k.startswith(prefix))
