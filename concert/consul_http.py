# concert/consul_http.py
from __future__ import annotations
from typing import Any, Optional
import requests

from concert.logger import get_logger

log = get_logger("concert.Consul.HTTP")


def consul_base_url(address: str) -> str:
    address = address.strip().rstrip("/")
    if "://" not in address:
        address = f"http://{address}"
    return address


class ConsulHTTP:
    """
    Thin session wrapper for the Consul HTTP API.

    - Prefixes every path with /v1
    - Sends the ACL token (X-Consul-Token) when one is configured
    - Applies a default request timeout, overridable per call
      (blocking queries need a longer one)
    """

    def __init__(
        self,
        address: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = consul_base_url(address)
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["X-Consul-Token"] = token

    def url(self, path: str) -> str:
        return f"{self.base_url}/v1/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        data: Any = None,
        json: Any = None,
        timeout: Optional[float] = None,
    ) -> requests.Response:
        url = self.url(path)
        log.debug(f"[CONSUL] {method} {url} params={params}")
        return self.session.request(
            method,
            url,
            params=params,
            data=data,
            json=json,
            timeout=timeout if timeout is not None else self.timeout,
        )

    def close(self) -> None:
        self.session.close()
