# concert/authority/authority_acme.py
from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import json

import josepy
import requests
from acme import challenges, client, crypto_util, errors as acme_errors, messages
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from concert.authority.authority_base import (
    AuthorityError,
    AuthorityPermanentError,
    AuthorityTransientError,
    CertificateAuthorityClient,
    IssuedCertificate,
)
from concert.authority.challenges import ChallengeProvider
from concert.identity import IdentityRecord, KeyType
from concert.logger import get_logger

log = get_logger("concert.Authority.ACME")

USER_AGENT = "concert"

# ACME problem types worth another try on the next pass
TRANSIENT_PROBLEMS = {
    "urn:ietf:params:acme:error:rateLimited",
    "urn:ietf:params:acme:error:serverInternal",
    "urn:ietf:params:acme:error:badNonce",
}


def account_jwk(identity: IdentityRecord):
    if identity.key_type is KeyType.ECDSA:
        return josepy.JWKEC(key=identity.key), josepy.ES256
    return josepy.JWKRSA(key=identity.key), josepy.RS256


def new_certificate_key() -> bytes:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


class AcmeAuthority(CertificateAuthorityClient):
    """
    ACME v2 client for one identity.

    • connect() fetches the directory; a stored registration is re-attached
    • register() agrees to the terms of service and returns the account resource as JSON
    • obtain() orders one domain, answers its DNS-01 challenges through the
      configured provider, and finalizes within `issue_timeout`
    """

    name = "acme"

    def __init__(
        self,
        identity: IdentityRecord,
        directory_url: str,
        challenge_provider: ChallengeProvider,
        issue_timeout: timedelta = timedelta(minutes=10),
        network_timeout: float = 45.0,
    ):
        self.identity = identity
        self.directory_url = directory_url
        self.challenge_provider = challenge_provider
        self.issue_timeout = issue_timeout
        self.network_timeout = network_timeout
        self.jwk, alg = account_jwk(identity)
        self.net = client.ClientNetwork(
            self.jwk, alg=alg, user_agent=USER_AGENT, timeout=int(network_timeout)
        )
        self._client: Optional[client.ClientV2] = None

    # ------------------------------------------------------------------
    # Connection + registration
    # ------------------------------------------------------------------
    def connect(self) -> client.ClientV2:
        if self._client is not None:
            return self._client
        try:
            directory = client.ClientV2.get_directory(self.directory_url, self.net)
        except (requests.RequestException, acme_errors.Error, ValueError) as e:
            raise AuthorityTransientError(f"fetching ACME directory {self.directory_url}: {e}") from e
        if self.identity.registration:
            try:
                self.net.account = messages.RegistrationResource.from_json(self.identity.registration)
            except (josepy.errors.DeserializationError, TypeError) as e:
                raise AuthorityPermanentError(f"stored registration for {self.identity.email} is unreadable: {e}") from e
        self._client = client.ClientV2(directory, self.net)
        log.info(f"[ACME] connected to {self.directory_url}")
        return self._client

    def register(self, identity: IdentityRecord) -> Dict[str, Any]:
        acme = self.connect()
        reg = messages.NewRegistration.from_data(email=identity.email, terms_of_service_agreed=True)
        try:
            regr = acme.new_account(reg)
        except acme_errors.ConflictError as e:
            # Key already has an account at this authority
            log.info(f"[ACME] account exists at {e.location}, reusing")
            try:
                regr = acme.query_registration(
                    messages.RegistrationResource(uri=e.location, body=messages.Registration())
                )
            except Exception as inner:
                raise self._translate(inner, "querying existing account") from inner
        except Exception as e:
            raise self._translate(e, "registering account") from e
        log.info(f"[ACME] account {identity.email} registered: {regr.uri}")
        return json.loads(regr.json_dumps())

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------
    def obtain(self, domain: str) -> IssuedCertificate:
        acme = self.connect()
        key_pem = new_certificate_key()
        csr_pem = crypto_util.make_csr(key_pem, [domain])
        answered = []
        try:
            try:
                orderr = acme.new_order(csr_pem)
                for authzr in orderr.authorizations:
                    if authzr.body.status == messages.STATUS_VALID:
                        continue
                    self._answer_dns01(acme, authzr, answered)
                deadline = datetime.now() + self.issue_timeout
                orderr = acme.poll_and_finalize(orderr, deadline=deadline)
            except AuthorityError:
                raise
            except Exception as e:
                raise self._translate(e, f"obtaining certificate for {domain}") from e
        finally:
            for name, fqdn, value in answered:
                try:
                    self.challenge_provider.cleanup(name, fqdn, value)
                except Exception:
                    log.exception(f"[DNS01] cleanup failed for {fqdn}")

        return IssuedCertificate(
            domain=domain,
            private_key=key_pem,
            certificate_bundle=orderr.fullchain_pem.encode("ascii"),
        )

    def _answer_dns01(self, acme: client.ClientV2, authzr: messages.AuthorizationResource, answered: list) -> None:
        name = authzr.body.identifier.value
        for challb in authzr.body.challenges:
            if isinstance(challb.chall, challenges.DNS01):
                fqdn = challb.chall.validation_domain_name(name)
                value = challb.chall.validation(self.jwk)
                self.challenge_provider.present(name, fqdn, value)
                answered.append((name, fqdn, value))
                acme.answer_challenge(challb, challb.response(self.jwk))
                return
        raise AuthorityPermanentError(f"no dns-01 challenge offered for {name}")

    @staticmethod
    def _translate(e: Exception, context: str) -> Exception:
        if isinstance(e, (requests.RequestException, acme_errors.TimeoutError)):
            return AuthorityTransientError(f"{context}: {e}")
        if isinstance(e, messages.Error) and e.typ in TRANSIENT_PROBLEMS:
            return AuthorityTransientError(f"{context}: {e}")
        return AuthorityPermanentError(f"{context}: {e}")

    def close(self) -> None:
        self.net.session.close()
