# concert/storage/identity_store.py
from __future__ import annotations
from typing import Optional

from concert.identity import IdentityRecord
from concert.logger import get_logger
from concert.storage.provider import KeyValueStore

log = get_logger("concert.IdentityStore")


class IdentityStore:
    """
    Durable home of the single IdentityRecord, stored under one fixed key.

    Storage errors propagate; without an identity nothing can be issued.
    """

    def __init__(self, kv: KeyValueStore, key: str):
        self.kv = kv
        self.key = key

    def load(self) -> Optional[IdentityRecord]:
        raw = self.kv.get(self.key)
        if raw is None:
            return None
        return IdentityRecord.from_json_bytes(raw)

    def save(self, record: IdentityRecord) -> None:
        self.kv.put(self.key, record.to_json_bytes())

    def load_or_create(self, email: str) -> IdentityRecord:
        record = self.load()
        if record is not None and record.email == email:
            return record

        if record is None:
            log.info(f"[IDENTITY] none stored at {self.key}, creating for {email}")
        else:
            log.info(f"[IDENTITY] stored email {record.email} != {email}, replacing")
        record = IdentityRecord.create(email)
        self.save(record)
        return record
