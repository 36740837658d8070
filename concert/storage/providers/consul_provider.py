from __future__ import annotations
from typing import Dict, List, Optional, Tuple
import requests

from concert.consul_http import ConsulHTTP
from concert.logger import get_logger
from concert.storage.provider import KeyValueStore, KVError
from concert.utils import b64e, b64d

log = get_logger("concert.KV.Consul")


class ConsulStorage(KeyValueStore):
    """
    KeyValueStore backed by the Consul KV HTTP API.

    put_many() uses /v1/txn so every key in the batch is committed or none is.
    """
    name = "consul"

    def __init__(self, http: ConsulHTTP):
        self.http = http

    def _call(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            return self.http.request(method, path, **kwargs)
        except requests.RequestException as e:
            raise KVError(f"consul {method} {path}: {e}") from e

    def get(self, key: str) -> Optional[bytes]:
        res = self._call("GET", f"kv/{key}", params={"raw": "true"})
        if res.status_code == 404:
            return None
        if not res.ok:
            raise KVError(f"consul get {key}: {res.status_code} {res.text}")
        return res.content

    def put(self, key: str, value: bytes) -> None:
        res = self._call("PUT", f"kv/{key}", data=value)
        if not res.ok:
            raise KVError(f"consul put {key}: {res.status_code} {res.text}")
        if res.text.strip() != "true":
            raise KVError(f"consul put {key}: write rejected")
        log.debug(f"[KV] put {key} bytes={len(value)}")

    def put_many(self, items: Dict[str, bytes]) -> None:
        ops = [
            {"KV": {"Verb": "set", "Key": key, "Value": b64e(value)}}
            for key, value in items.items()
        ]
        res = self._call("PUT", "txn", json=ops)
        if not res.ok:
            raise KVError(f"consul txn ({len(ops)} ops): {res.status_code} {res.text}")
        log.debug(f"[KV] txn keys={list(items)}")

    def list_by_prefix(self, prefix: str) -> List[Tuple[str, bytes]]:
        res = self._call("GET", f"kv/{prefix}", params={"recurse": "true"})
        if res.status_code == 404:
            return []
        if not res.ok:
            raise KVError(f"consul list {prefix}: {res.status_code} {res.text}")
        try:
            entries = res.json()
        except ValueError as e:
            raise KVError(f"consul list {prefix}: invalid JSON: {e}") from e
        out = []
        for entry in entries:
            value = entry.get("Value")
            out.append((entry["Key"], b64d(value) if value else b""))
        return out

    def close(self) -> None:
        self.http.close()
