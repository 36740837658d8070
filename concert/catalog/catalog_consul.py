# concert/catalog/catalog_consul.py
from __future__ import annotations
from typing import Optional, Tuple
import threading
import requests

from concert.catalog.catalog_base import CatalogError, ServiceCatalog, Services, ServicesHandler
from concert.consul_http import ConsulHTTP
from concert.logger import get_logger

log = get_logger("concert.Catalog.Consul")


class ConsulCatalog(ServiceCatalog):
    """
    Service catalog backed by Consul's /v1/catalog/services.

    watch() runs a blocking-query loop on a daemon thread:
      - the first query returns immediately and is always delivered
      - later queries block on X-Consul-Index for up to `wait_seconds`
      - the handler runs only when the index moves
      - an index that goes backwards resets the loop to a fresh read
      - errors back off exponentially up to `max_backoff` seconds
    Stop latency is bounded by `wait_seconds`.
    """
    name = "consul"

    def __init__(
        self,
        http: ConsulHTTP,
        wait_seconds: float = 60.0,
        min_backoff: float = 1.0,
        max_backoff: float = 60.0,
    ):
        self.http = http
        self.wait_seconds = wait_seconds
        self.min_backoff = min_backoff
        self.max_backoff = max_backoff
        self._threads = []

    def _query(self, index: int = 0) -> Tuple[Services, int]:
        params = {}
        timeout = None
        if index > 0:
            params = {"index": str(index), "wait": f"{int(self.wait_seconds)}s"}
            # Consul adds up to wait/16 of jitter
            timeout = self.wait_seconds + self.wait_seconds / 16 + 5
        try:
            res = self.http.request("GET", "catalog/services", params=params, timeout=timeout)
        except requests.RequestException as e:
            raise CatalogError(f"consul catalog query: {e}") from e
        if not res.ok:
            raise CatalogError(f"consul catalog query: {res.status_code} {res.text}")
        try:
            data = res.json()
            new_index = int(res.headers.get("X-Consul-Index", "0"))
        except ValueError as e:
            raise CatalogError(f"consul catalog query: bad response: {e}") from e
        services = {name: list(tags or []) for name, tags in (data or {}).items()}
        return services, new_index

    def list_services(self) -> Services:
        services, _ = self._query()
        return services

    def _watch_loop(self, handler: ServicesHandler, stop: threading.Event) -> None:
        log.info(f"[WATCH] starting catalog watch on {self.http.base_url}")
        index = 0
        backoff = self.min_backoff
        while not stop.is_set():
            try:
                services, new_index = self._query(index)
            except CatalogError as e:
                log.error(f"[WATCH] {e}; retrying in {backoff:.0f}s")
                stop.wait(backoff)
                backoff = min(backoff * 2, self.max_backoff)
                continue
            backoff = self.min_backoff

            if stop.is_set():
                break
            if new_index == index and index > 0:
                continue
            if new_index < index:
                log.info(f"[WATCH] index went backwards ({index} -> {new_index}), resetting")
                index = 0
                continue
            index = max(new_index, 1)

            try:
                handler(services)
            except Exception:
                log.exception("[WATCH] handler failed")
        log.info("[WATCH] catalog watch stopped")

    def watch(self, handler: ServicesHandler, stop: threading.Event) -> Optional[threading.Thread]:
        t = threading.Thread(
            target=self._watch_loop,
            args=(handler, stop),
            name="concert-catalog-watch",
            daemon=True,
        )
        t.start()
        self._threads.append(t)
        return t

    def close(self) -> None:
        self.http.close()
