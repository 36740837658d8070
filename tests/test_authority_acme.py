from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import josepy
import pytest
import requests
from acme import challenges, client, errors as acme_errors, messages
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from concert.authority import AuthorityPermanentError, AuthorityTransientError
from concert.authority.authority_acme import AcmeAuthority, account_jwk, new_certificate_key
from concert.authority.challenges import ChallengeError, ChallengeProvider, ManualProvider
from concert.identity import IdentityRecord, KeyType

from conftest import make_cert


def test_account_key_algorithms():
    jwk, alg = account_jwk(IdentityRecord.create("a@b.c"))
    assert isinstance(jwk, josepy.JWKEC) and alg is josepy.ES256
    jwk, alg = account_jwk(IdentityRecord.create("a@b.c", KeyType.RSA))
    assert isinstance(jwk, josepy.JWKRSA) and alg is josepy.RS256


def test_certificate_key_is_rsa_2048_pem():
    key = serialization.load_pem_private_key(new_certificate_key(), password=None)
    assert isinstance(key, rsa.RSAPrivateKey)
    assert key.key_size == 2048


def test_error_translation():
    t = AcmeAuthority._translate
    assert isinstance(t(requests.ConnectionError("x"), "ctx"), AuthorityTransientError)
    assert isinstance(t(acme_errors.TimeoutError(), "ctx"), AuthorityTransientError)
    rate = messages.Error(typ="urn:ietf:params:acme:error:rateLimited", detail="slow down")
    assert isinstance(t(rate, "ctx"), AuthorityTransientError)
    bad = messages.Error(typ="urn:ietf:params:acme:error:rejectedIdentifier", detail="no")
    assert isinstance(t(bad, "ctx"), AuthorityPermanentError)


def test_unreachable_directory_is_transient(monkeypatch):
    authority = AcmeAuthority(IdentityRecord.create("a@b.c"), "https://ca.invalid/directory", ManualProvider())

    def refuse(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(authority.net.session, "request", refuse)
    with pytest.raises(AuthorityTransientError, match="ca.invalid"):
        authority.connect()


def test_unreadable_stored_registration_is_permanent(monkeypatch):
    identity = IdentityRecord.create("a@b.c")
    identity.registration = {"not": "an account"}
    authority = AcmeAuthority(identity, "https://ca.invalid/directory", ManualProvider())
    monkeypatch.setattr(client.ClientV2, "get_directory", staticmethod(lambda url, net: object()))

    with pytest.raises(AuthorityPermanentError, match="stored registration"):
        authority.connect()


# --------- issuance against a scripted ACME client ----------
class RecordingProvider(ChallengeProvider):
    name = "recording"

    def __init__(self, fail_present=False):
        super().__init__()
        self.fail_present = fail_present
        self.calls = []

    def present(self, domain, fqdn, value):
        if self.fail_present:
            raise ChallengeError(f"hook refused {fqdn}")
        self.calls.append(("present", domain, fqdn, value))

    def cleanup(self, domain, fqdn, value):
        self.calls.append(("cleanup", domain, fqdn, value))


class ScriptedACME:
    """Stands in for acme.client.ClientV2 with one authorization per order."""

    def __init__(self, authorizations, fullchain_pem="", finalize_error=None):
        self.authorizations = authorizations
        self.fullchain_pem = fullchain_pem
        self.finalize_error = finalize_error
        self.csrs = []
        self.answered = []
        self.deadline = None

    def new_order(self, csr_pem):
        self.csrs.append(csr_pem)
        return SimpleNamespace(authorizations=self.authorizations, fullchain_pem=None)

    def answer_challenge(self, challb, response):
        self.answered.append((challb, response))

    def poll_and_finalize(self, orderr, deadline=None):
        self.deadline = deadline
        if self.finalize_error:
            raise self.finalize_error
        return SimpleNamespace(authorizations=orderr.authorizations, fullchain_pem=self.fullchain_pem)


def challenge(chall):
    return SimpleNamespace(chall=chall, response=lambda jwk: chall.response(jwk))


def authorization(domain, *challs, status=messages.STATUS_PENDING):
    body = SimpleNamespace(
        status=status,
        identifier=SimpleNamespace(value=domain),
        challenges=[challenge(c) for c in challs],
    )
    return SimpleNamespace(body=body)


def make_authority(acme, provider, issue_timeout=timedelta(minutes=5)):
    authority = AcmeAuthority(
        IdentityRecord.create("ops@example.com"),
        "https://ca.invalid/directory",
        provider,
        issue_timeout=issue_timeout,
    )
    authority._client = acme
    return authority


def test_obtain_answers_dns01_and_returns_chain_with_key():
    dns = challenges.DNS01(token=b"t" * 16)
    http = challenges.HTTP01(token=b"h" * 16)
    _, leaf = make_cert("api.example.com", datetime(2031, 1, 1, tzinfo=timezone.utc))
    acme = ScriptedACME([authorization("api.example.com", http, dns)], fullchain_pem=leaf.decode("ascii"))
    provider = RecordingProvider()
    authority = make_authority(acme, provider)

    before = datetime.now()
    issued = authority.obtain("api.example.com")
    after = datetime.now()

    assert len(acme.csrs) == 1
    csr = x509.load_pem_x509_csr(acme.csrs[0])
    san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.DNSName) == ["api.example.com"]

    fqdn = "_acme-challenge.api.example.com"
    value = dns.validation(authority.jwk)
    assert provider.calls == [
        ("present", "api.example.com", fqdn, value),
        ("cleanup", "api.example.com", fqdn, value),
    ]
    assert len(acme.answered) == 1 and acme.answered[0][0].chall is dns
    assert before + timedelta(minutes=5) <= acme.deadline <= after + timedelta(minutes=5)

    assert issued.domain == "api.example.com"
    assert issued.certificate_bundle == leaf
    key = serialization.load_pem_private_key(issued.private_key, password=None)
    assert isinstance(key, rsa.RSAPrivateKey)


def test_valid_authorization_is_not_answered_again():
    _, leaf = make_cert("api.example.com", datetime(2031, 1, 1, tzinfo=timezone.utc))
    dns = challenges.DNS01(token=b"t" * 16)
    acme = ScriptedACME(
        [authorization("api.example.com", dns, status=messages.STATUS_VALID)],
        fullchain_pem=leaf.decode("ascii"),
    )
    provider = RecordingProvider()

    make_authority(acme, provider).obtain("api.example.com")

    assert provider.calls == []
    assert acme.answered == []


def test_order_without_dns01_is_permanent():
    acme = ScriptedACME([authorization("api.example.com", challenges.HTTP01(token=b"h" * 16))])
    provider = RecordingProvider()

    with pytest.raises(AuthorityPermanentError, match="no dns-01"):
        make_authority(acme, provider).obtain("api.example.com")
    assert provider.calls == []
    assert acme.deadline is None


def test_finalize_failure_still_cleans_up():
    rejected = messages.Error(typ="urn:ietf:params:acme:error:unauthorized", detail="TXT mismatch")
    acme = ScriptedACME(
        [authorization("api.example.com", challenges.DNS01(token=b"t" * 16))],
        finalize_error=rejected,
    )
    provider = RecordingProvider()

    with pytest.raises(AuthorityPermanentError, match="api.example.com"):
        make_authority(acme, provider).obtain("api.example.com")
    assert [c[0] for c in provider.calls] == ["present", "cleanup"]


def test_finalize_timeout_is_transient_and_cleans_up():
    acme = ScriptedACME(
        [authorization("api.example.com", challenges.DNS01(token=b"t" * 16))],
        finalize_error=acme_errors.TimeoutError(),
    )
    provider = RecordingProvider()

    with pytest.raises(AuthorityTransientError):
        make_authority(acme, provider).obtain("api.example.com")
    assert [c[0] for c in provider.calls] == ["present", "cleanup"]


def test_challenge_hook_failure_is_permanent():
    acme = ScriptedACME([authorization("api.example.com", challenges.DNS01(token=b"t" * 16))])
    provider = RecordingProvider(fail_present=True)

    with pytest.raises(AuthorityPermanentError, match="hook refused"):
        make_authority(acme, provider).obtain("api.example.com")
    assert provider.calls == []
    assert acme.answered == []
