"""
concert.engine
--------------
The reconcile pass.

For every demanded domain, compare the stored certificate's NotAfter with
the renewal threshold and issue a new certificate when it is missing or
about to expire. Each domain succeeds or fails on its own; one bad domain
never stops the rest of the pass.

Passes are serialized by a single lock. The expiry snapshot is taken
inside the lock, so a pass that waited behind another one sees what the
earlier pass stored and does not issue the same domain again.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional
import threading

from concert.authority.authority_base import CertificateAuthorityClient
from concert.logger import get_logger
from concert.storage.cert_store import CertificateRecordStore
from concert.storage.provider import KVError
from concert.utils import now_utc

log = get_logger("concert.Engine")


@dataclass
class ReconcileResult:
    issued: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    current: List[str] = field(default_factory=list)
    aborted: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.aborted is None and not self.failed

    def summary(self) -> str:
        if self.aborted:
            return f"aborted: {self.aborted}"
        return f"issued={len(self.issued)} failed={len(self.failed)} current={len(self.current)}"


def needs_issuance(expiry: Optional[datetime], now: datetime, threshold: timedelta) -> bool:
    return expiry is None or expiry - now < threshold


class ReconcileEngine:
    def __init__(
        self,
        authority: CertificateAuthorityClient,
        cert_store: CertificateRecordStore,
        renewal_threshold: timedelta,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.authority = authority
        self.cert_store = cert_store
        self.renewal_threshold = renewal_threshold
        self.clock = clock
        self._lock = threading.Lock()

    def reconcile(self, domains: Iterable[str], reason: str = "") -> ReconcileResult:
        with self._lock:
            return self._reconcile(sorted(set(domains)), reason)

    def _reconcile(self, domains: List[str], reason: str) -> ReconcileResult:
        result = ReconcileResult()
        log.info(f"[RECONCILE] start reason={reason or 'manual'} domains={len(domains)}")
        try:
            expiries = self.cert_store.list_expiries()
        except KVError as e:
            log.error(f"[RECONCILE] cannot list stored certificates: {e}")
            result.aborted = str(e)
            return result
        log.debug(f"[RECONCILE] stored expiries={ {d: t.isoformat() for d, t in expiries.items()} }")

        for domain in domains:
            if not needs_issuance(expiries.get(domain), self.clock(), self.renewal_threshold):
                result.current.append(domain)
                continue
            err = self.issue(domain)
            if err is None:
                result.issued.append(domain)
            else:
                result.failed[domain] = str(err)

        log.info(f"[RECONCILE] done {result.summary()}")
        return result

    def issue(self, domain: str) -> Optional[Exception]:
        """Obtain and store a certificate for one domain. Returns the error instead of raising."""
        log.info(f"[ISSUE] {domain}")
        try:
            cert = self.authority.obtain(domain)
            self.cert_store.put(domain, cert.private_key, cert.certificate_bundle)
        except Exception as e:
            log.exception(f"[ISSUE] failed for {domain}: {e}")
            return e
        log.info(f"[ISSUE] {domain} stored")
        return None
