# concert/catalog/catalog_local.py
from __future__ import annotations
from typing import List, Optional
import threading

from concert.catalog.catalog_base import ServiceCatalog, Services, ServicesHandler
from concert.logger import get_logger

log = get_logger("concert.Catalog.Local")


class LocalCatalog(ServiceCatalog):
    """
    In-process catalog. set_services() replaces the whole mapping and
    notifies watchers synchronously on the caller's thread.
    """
    name = "local"

    def __init__(self, services: Optional[Services] = None):
        self._services: Services = {k: list(v) for k, v in (services or {}).items()}
        self._watchers: List[tuple[ServicesHandler, threading.Event]] = []
        self._lock = threading.Lock()

    def list_services(self) -> Services:
        with self._lock:
            return {k: list(v) for k, v in self._services.items()}

    def set_services(self, services: Services) -> None:
        with self._lock:
            self._services = {k: list(v) for k, v in services.items()}
            watchers = [(h, s) for h, s in self._watchers if not s.is_set()]
            self._watchers = watchers
        log.debug(f"[LOCAL CATALOG] services={sorted(services)}")
        for handler, _ in watchers:
            handler(self.list_services())

    def watch(self, handler: ServicesHandler, stop: threading.Event) -> Optional[threading.Thread]:
        with self._lock:
            self._watchers.append((handler, stop))
        handler(self.list_services())
        return None
