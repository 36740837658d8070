"""
concert.config
--------------
Deployment configuration.

Read from a YAML file whose keys match existing deployments
(consulAddress, accountEmail, CADir, ...). Every scalar key can be
overridden by an environment variable; see ENV_OVERRIDES.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Optional
import os

import yaml

from concert.logger import LEVELS
from concert.utils import parse_duration

LETSENCRYPT_DIRECTORY = "https://acme-v02.api.letsencrypt.org/directory"


class ConfigError(Exception):
    pass


# yaml key -> environment variable
ENV_OVERRIDES = {
    "consulAddress": "CONCERT_CONSUL_ADDRESS",
    "consulToken": "CONSUL_HTTP_TOKEN",
    "accountStoreKey": "CONCERT_ACCOUNT_STORE_KEY",
    "accountEmail": "CONCERT_ACCOUNT_EMAIL",
    "CADir": "CONCERT_CA_DIR",
    "DNS01ProviderName": "CONCERT_DNS01_PROVIDER",
    "certStoreKey": "CONCERT_CERT_STORE_KEY",
    "renewalTTL": "CONCERT_RENEWAL_TTL",
    "reconcileInterval": "CONCERT_RECONCILE_INTERVAL",
    "issueTimeout": "CONCERT_ISSUE_TIMEOUT",
    "kvProvider": "CONCERT_KV_PROVIDER",
    "catalogProvider": "CONCERT_CATALOG_PROVIDER",
    "logLevel": "CONCERT_LOG_LEVEL",
}

REQUIRED = ("accountEmail", "DNS01ProviderName")

KV_PROVIDERS = ("consul", "memory")
CATALOG_PROVIDERS = ("consul", "local")


@dataclass
class ConcertConfig:
    account_email: str
    dns01_provider: str
    consul_address: str = "127.0.0.1:8500"
    consul_token: Optional[str] = None
    account_store_key: str = "concert/account"
    ca_dir: str = LETSENCRYPT_DIRECTORY
    cert_store_key: str = "concert/certs"
    renewal_ttl: timedelta = timedelta(hours=720)
    reconcile_interval: timedelta = timedelta(hours=1)
    issue_timeout: timedelta = timedelta(minutes=10)
    kv_provider: str = "consul"
    catalog_provider: str = "consul"
    log_level: str = "INFO"
    dns01: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], env: Optional[Dict[str, str]] = None) -> "ConcertConfig":
        env = os.environ if env is None else env
        merged = dict(data or {})
        for key, var in ENV_OVERRIDES.items():
            if env.get(var):
                merged[key] = env[var]

        missing = [k for k in REQUIRED if not merged.get(k)]
        if missing:
            raise ConfigError(f"Missing required config key(s): {', '.join(missing)}")

        dns01 = merged.get("dns01") or {}
        if not isinstance(dns01, dict):
            raise ConfigError("dns01 must be a mapping")

        defaults = cls(account_email="", dns01_provider="")
        return cls(
            account_email=str(merged["accountEmail"]),
            dns01_provider=str(merged["DNS01ProviderName"]),
            consul_address=str(merged.get("consulAddress") or defaults.consul_address),
            consul_token=merged.get("consulToken") or None,
            account_store_key=str(merged.get("accountStoreKey") or defaults.account_store_key),
            ca_dir=str(merged.get("CADir") or defaults.ca_dir),
            cert_store_key=str(merged.get("certStoreKey") or defaults.cert_store_key),
            renewal_ttl=_duration(merged, "renewalTTL", defaults.renewal_ttl),
            reconcile_interval=_duration(merged, "reconcileInterval", defaults.reconcile_interval),
            issue_timeout=_duration(merged, "issueTimeout", defaults.issue_timeout),
            kv_provider=_choice(merged, "kvProvider", defaults.kv_provider, KV_PROVIDERS),
            catalog_provider=_choice(merged, "catalogProvider", defaults.catalog_provider, CATALOG_PROVIDERS),
            log_level=_choice(merged, "logLevel", defaults.log_level, LEVELS, normalize=str.upper),
            dns01=dict(dns01),
        )

    def kv_settings(self) -> Dict[str, Any]:
        return {"provider": self.kv_provider, "consul_address": self.consul_address, "consul_token": self.consul_token}

    def catalog_settings(self) -> Dict[str, Any]:
        return {"provider": self.catalog_provider, "consul_address": self.consul_address, "consul_token": self.consul_token}


def _choice(data: Dict[str, Any], key: str, default: str, allowed, normalize=str.lower) -> str:
    value = normalize(str(data.get(key) or default))
    if value not in allowed:
        raise ConfigError(f"{key} must be one of {', '.join(allowed)}, got {data.get(key)!r}")
    return value


def _duration(data: Dict[str, Any], key: str, default: timedelta) -> timedelta:
    raw = data.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = parse_duration(str(raw))
    except ValueError as e:
        raise ConfigError(f"{key}: {e}") from e
    if value <= timedelta(0):
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return value


def load_config(path: str, env: Optional[Dict[str, str]] = None) -> ConcertConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping/dict")
    return ConcertConfig.from_dict(data, env=env)
