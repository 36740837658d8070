# concert/triggers.py
from __future__ import annotations
from datetime import timedelta
from typing import Optional
import threading

from concert.catalog.catalog_base import CatalogError, ServiceCatalog, Services
from concert.engine import ReconcileEngine, ReconcileResult
from concert.logger import get_logger
from concert.selector import select_domains

log = get_logger("concert.Trigger")


class PeriodicTrigger:
    """
    Sleeps `interval`, reads the catalog, reconciles. Repeats until stop is set.

    A failed catalog read skips that tick only.
    """

    def __init__(self, catalog: ServiceCatalog, engine: ReconcileEngine, interval: timedelta, stop: threading.Event):
        self.catalog = catalog
        self.engine = engine
        self.interval = interval
        self.stop = stop
        self._thread: Optional[threading.Thread] = None

    def tick(self) -> Optional[ReconcileResult]:
        log.info("[TRIGGER] reconciling because of regular interval")
        try:
            services = self.catalog.list_services()
        except CatalogError as e:
            log.error(f"[TRIGGER] error fetching services: {e}")
            return None
        return self.engine.reconcile(select_domains(services), reason="interval")

    def _loop(self) -> None:
        seconds = self.interval.total_seconds()
        while not self.stop.wait(seconds):
            try:
                self.tick()
            except Exception:
                log.exception("[TRIGGER] periodic reconcile failed")
        log.info("[TRIGGER] periodic trigger stopped")

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self._loop, name="concert-periodic", daemon=True)
        self._thread.start()
        log.info(f"[TRIGGER] periodic trigger every {self.interval}")
        return self._thread


class CatalogWatchTrigger:
    """Reconciles whenever the catalog pushes a new service mapping."""

    def __init__(self, catalog: ServiceCatalog, engine: ReconcileEngine, stop: threading.Event):
        self.catalog = catalog
        self.engine = engine
        self.stop = stop

    def on_change(self, services: Services) -> ReconcileResult:
        log.info("[TRIGGER] reconciling because of catalog update")
        return self.engine.reconcile(select_domains(services), reason="catalog")

    def start(self) -> Optional[threading.Thread]:
        return self.catalog.watch(self.on_change, self.stop)
