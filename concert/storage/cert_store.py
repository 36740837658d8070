"""
concert.storage.cert_store
--------------------------
Per-domain certificate material in the key-value store.

Layout under the configured prefix:

    <prefix>/<domain>-key.pem    private key (PEM)
    <prefix>/<domain>-cert.pem   certificate chain, leaf first (PEM)

Expiry is never stored; it is read back from the leaf certificate.
Keys nested deeper than one level below the prefix are not domains.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Dict

from cryptography import x509

from concert.logger import get_logger
from concert.storage.provider import KeyValueStore

log = get_logger("concert.CertStore")

CERT_SUFFIX = "-cert.pem"
KEY_SUFFIX = "-key.pem"


def leaf_not_after(bundle: bytes) -> datetime:
    """NotAfter of the first certificate in a PEM bundle, as an aware UTC datetime."""
    cert = x509.load_pem_x509_certificates(bundle)[0]
    if hasattr(cert, "not_valid_after_utc"):
        return cert.not_valid_after_utc
    return cert.not_valid_after.replace(tzinfo=timezone.utc)


class CertificateRecordStore:
    def __init__(self, kv: KeyValueStore, prefix: str):
        if not prefix.endswith("/"):
            prefix += "/"
        self.kv = kv
        self.prefix = prefix

    def key_path(self, domain: str) -> str:
        return f"{self.prefix}{domain}{KEY_SUFFIX}"

    def cert_path(self, domain: str) -> str:
        return f"{self.prefix}{domain}{CERT_SUFFIX}"

    def list_expiries(self) -> Dict[str, datetime]:
        """
        Map every stored domain to the NotAfter of its leaf certificate.

        Entries that do not parse are logged and left out. KVError from the
        listing itself propagates.
        """
        expiries: Dict[str, datetime] = {}
        for key, value in self.kv.list_by_prefix(self.prefix):
            if not key.endswith(CERT_SUFFIX):
                continue
            domain = key[len(self.prefix):-len(CERT_SUFFIX)]
            if "/" in domain:
                continue
            try:
                expiries[domain] = leaf_not_after(value)
            except ValueError as e:
                log.warning(f"[CERTS] skipping unparseable certificate {key}: {e}")
        return expiries

    def put(self, domain: str, private_key: bytes, certificate_bundle: bytes) -> None:
        # Key before cert on backends without transactions.
        self.kv.put_many({
            self.key_path(domain): private_key,
            self.cert_path(domain): certificate_bundle,
        })
        log.info(f"[CERTS] stored {domain}")
