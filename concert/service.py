"""
concert.service
---------------
Process-level orchestration.

Startup (any failure here is fatal and raised as StartupError):
  1. load or create the identity for the configured email
  2. build the certificate authority client for that identity
  3. register the identity with the authority if it carries no registration

Running: a periodic trigger and a catalog watch both drive the same
ReconcileEngine. stop() wakes both and releases backend connections.
"""

from __future__ import annotations
from typing import Callable, List, Optional
import threading

from concert.authority.authority_base import AuthorityError, CertificateAuthorityClient
from concert.authority.challenges import ChallengeError, provider_by_name
from concert.catalog import CatalogError, ServiceCatalog, catalog_factory
from concert.config import ConcertConfig
from concert.engine import ReconcileEngine, ReconcileResult
from concert.identity import IdentityDecodeError, IdentityRecord
from concert.logger import get_logger
from concert.selector import select_domains
from concert.storage import CertificateRecordStore, IdentityStore, KeyValueStore, KVError, load_kv_provider
from concert.triggers import CatalogWatchTrigger, PeriodicTrigger

log = get_logger("concert.Service")

AuthorityFactory = Callable[[IdentityRecord], CertificateAuthorityClient]


class StartupError(Exception):
    pass


class Concert:
    def __init__(
        self,
        config: ConcertConfig,
        kv: Optional[KeyValueStore] = None,
        catalog: Optional[ServiceCatalog] = None,
        authority_factory: Optional[AuthorityFactory] = None,
    ):
        self.config = config
        self.kv = kv or load_kv_provider(config.kv_settings())
        self.catalog = catalog or catalog_factory(config.catalog_settings())
        self.identity_store = IdentityStore(self.kv, config.account_store_key)
        self.cert_store = CertificateRecordStore(self.kv, config.cert_store_key)
        self.authority_factory = authority_factory or self._acme_authority
        self.stop_event = threading.Event()

        self.identity: Optional[IdentityRecord] = None
        self.authority: Optional[CertificateAuthorityClient] = None
        self.engine: Optional[ReconcileEngine] = None
        self._threads: List[threading.Thread] = []

    def _acme_authority(self, identity: IdentityRecord) -> CertificateAuthorityClient:
        from concert.authority.authority_acme import AcmeAuthority

        provider = provider_by_name(self.config.dns01_provider, self.config.dns01)
        authority = AcmeAuthority(
            identity,
            self.config.ca_dir,
            provider,
            issue_timeout=self.config.issue_timeout,
        )
        authority.connect()
        return authority

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------
    def setup(self) -> None:
        if self.engine is not None:
            return
        try:
            self.identity = self.identity_store.load_or_create(self.config.account_email)
            self.authority = self.authority_factory(self.identity)
            self.engine = ReconcileEngine(self.authority, self.cert_store, self.config.renewal_ttl)
            self.ensure_registered()
        except (KVError, IdentityDecodeError, AuthorityError, ChallengeError) as e:
            self.engine = None
            raise StartupError(f"{type(e).__name__}: {e}") from e

    def ensure_registered(self) -> None:
        identity = self.identity
        if identity.registered:
            log.info(f"[REGISTER] account {identity.email} already registered")
            return
        identity.registration = self.authority.register(identity)
        self.identity_store.save(identity)
        log.info(f"[REGISTER] account {identity.email} registered and saved")

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------
    def reconcile_once(self) -> ReconcileResult:
        self.setup()
        try:
            services = self.catalog.list_services()
        except CatalogError as e:
            log.error(f"[RECONCILE] error fetching services: {e}")
            return ReconcileResult(aborted=str(e))
        return self.engine.reconcile(select_domains(services), reason="once")

    def start(self) -> None:
        self.setup()
        periodic = PeriodicTrigger(self.catalog, self.engine, self.config.reconcile_interval, self.stop_event)
        watch = CatalogWatchTrigger(self.catalog, self.engine, self.stop_event)
        self._threads.append(periodic.start())
        t = watch.start()
        if t is not None:
            self._threads.append(t)
        log.info("[SERVICE] running")

    def run(self) -> None:
        """Start the triggers and block until stop(); the caller owns shutdown()."""
        self.start()
        self.stop_event.wait()

    def stop(self) -> None:
        log.info("[SERVICE] stop requested")
        self.stop_event.set()

    def shutdown(self, timeout: float = 5.0) -> None:
        self.stop_event.set()
        for t in self._threads:
            t.join(timeout)
        self._threads = []
        if self.authority is not None:
            self.authority.close()
        self.catalog.close()
        self.kv.close()
        log.info("[SERVICE] stopped")
