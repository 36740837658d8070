from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict

from concert.identity import IdentityRecord


class AuthorityError(Exception):
    pass


class AuthorityTransientError(AuthorityError):
    """Worth retrying on a later pass: network trouble, rate limits, timeouts."""


class AuthorityPermanentError(AuthorityError):
    """Rejected by the authority: bad domain, failed validation, policy."""


@dataclass
class IssuedCertificate:
    domain: str
    private_key: bytes          # PEM
    certificate_bundle: bytes   # PEM chain, leaf first


class CertificateAuthorityClient:
    """
    Contract for the certificate authority.

    register() returns the opaque registration handle to store on the
    identity. obtain() issues a certificate for exactly one domain and
    returns the bundled chain; the leaf's NotAfter is authoritative.
    """
    name: str = "base"

    def register(self, identity: IdentityRecord) -> Dict[str, Any]:
        raise NotImplementedError

    def obtain(self, domain: str) -> IssuedCertificate:
        raise NotImplementedError

    def close(self) -> None:
        return
