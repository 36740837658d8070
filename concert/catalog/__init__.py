# concert/catalog/__init__.py
import os
from concert.catalog.catalog_base import CatalogError, ServiceCatalog, Services
from concert.catalog.catalog_local import LocalCatalog
from concert.catalog.catalog_consul import ConsulCatalog
from concert.consul_http import ConsulHTTP


def catalog_factory(config: dict | None = None) -> ServiceCatalog:
    """
    provider:
      - "consul" → Consul catalog with blocking-query watch (default)
      - "local"  → in-process catalog, fed via set_services()
    """
    config = config or {}
    mode = (config.get("provider") or os.getenv("CONCERT_CATALOG_PROVIDER", "consul")).lower()

    if mode == "consul":
        address = config.get("consul_address") or os.getenv("CONCERT_CONSUL_ADDRESS", "127.0.0.1:8500")
        token = config.get("consul_token") or os.getenv("CONSUL_HTTP_TOKEN")
        return ConsulCatalog(ConsulHTTP(address, token=token))

    if mode == "local":
        return LocalCatalog()

    raise ValueError(f"Unknown catalog provider: {mode}")


__all__ = ["CatalogError", "ServiceCatalog", "Services", "LocalCatalog", "ConsulCatalog", "catalog_factory"]
