from __future__ import annotations
from typing import Callable, Dict, List, Optional
import threading

Services = Dict[str, List[str]]
ServicesHandler = Callable[[Services], None]


class CatalogError(Exception):
    pass


class ServiceCatalog:
    """
    Contract for the service catalog.

    list_services() is a one-shot read of service name -> tags.
    watch() delivers the same mapping to handler every time it changes,
    until stop is set. Implementations that run a background thread
    return it so callers can join on shutdown.
    """
    name: str = "base"

    def list_services(self) -> Services:
        raise NotImplementedError

    def watch(self, handler: ServicesHandler, stop: threading.Event) -> Optional[threading.Thread]:
        raise NotImplementedError

    def close(self) -> None:
        return
