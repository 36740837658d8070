import threading
import time
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from concert.authority.authority_base import (
    AuthorityPermanentError,
    CertificateAuthorityClient,
    IssuedCertificate,
)
from concert.storage import CertificateRecordStore, InMemoryStorage


def make_cert(domain, not_after, lifetime=timedelta(days=90)):
    """Self-signed (key_pem, cert_pem) for domain expiring at not_after."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - lifetime)
        .not_valid_after(not_after)
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(domain)]), critical=False)
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )
    return key_pem, cert.public_bytes(serialization.Encoding.PEM)


class FakeAuthority(CertificateAuthorityClient):
    """Mints self-signed 90 day certificates; domains in `failing` are rejected."""
    name = "fake"

    def __init__(self, failing=(), delay=0.0, register_error=None):
        self.failing = set(failing)
        self.delay = delay
        self.register_error = register_error
        self.obtained = []
        self.registered = []
        self.closed = False
        self._lock = threading.Lock()

    def register(self, identity):
        if self.register_error:
            raise self.register_error
        self.registered.append(identity.email)
        return {"uri": "https://ca.test/acme/acct/1", "body": {"contact": [f"mailto:{identity.email}"]}}

    def obtain(self, domain):
        with self._lock:
            self.obtained.append(domain)
        if self.delay:
            time.sleep(self.delay)
        if domain in self.failing:
            raise AuthorityPermanentError(f"rejected {domain}")
        not_after = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=90)
        key_pem, cert_pem = make_cert(domain, not_after)
        return IssuedCertificate(domain=domain, private_key=key_pem, certificate_bundle=cert_pem)

    def close(self):
        self.closed = True


@pytest.fixture
def kv():
    return InMemoryStorage()


@pytest.fixture
def cert_store(kv):
    return CertificateRecordStore(kv, "concert/certs")


@pytest.fixture
def fixed_now():
    return datetime(2030, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
