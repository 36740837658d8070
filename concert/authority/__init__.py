# concert/authority/__init__.py
from concert.authority.authority_base import (
    AuthorityError,
    AuthorityPermanentError,
    AuthorityTransientError,
    CertificateAuthorityClient,
    IssuedCertificate,
)
from concert.authority.challenges import ChallengeError, ChallengeProvider, provider_by_name

__all__ = [
    "AuthorityError",
    "AuthorityPermanentError",
    "AuthorityTransientError",
    "CertificateAuthorityClient",
    "IssuedCertificate",
    "ChallengeError",
    "ChallengeProvider",
    "provider_by_name",
]
