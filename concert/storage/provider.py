from __future__ import annotations
from typing import Dict, List, Optional, Tuple


class KVError(Exception):
    pass


class KeyValueStore:
    """
    Contract for the durable key-value backend.

    Keys are slash-separated strings; values are raw bytes. Missing keys are
    not errors: get() returns None and list_by_prefix() returns [].
    Backend failures raise KVError.
    """
    name: str = "base"

    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def put(self, key: str, value: bytes) -> None:
        raise NotImplementedError

    def list_by_prefix(self, prefix: str) -> List[Tuple[str, bytes]]:
        raise NotImplementedError

    def put_many(self, items: Dict[str, bytes]) -> None:
        """
        Write several keys. Backends with transactions override this to
        commit all of them at once; the default is one put per key, in order.
        """
        for key, value in items.items():
            self.put(key, value)

    def close(self) -> None:
        return
