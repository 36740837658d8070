"""
concert.identity
----------------
The operator's identity with the certificate authority.

An IdentityRecord holds:

- the configured contact email
- an account keypair (ECDSA P-256 by default, RSA accepted on load)
- the opaque registration handle returned by the authority, once registered

Serialized form is a JSON object compatible with existing deployments:

    {"Email": "...", "Registration": {...} | null, "KeyType": "ecdsa", "Key": "<b64 DER>"}

The private key is DER encoded in its traditional form (SEC1 for ECDSA,
PKCS#1 for RSA) and base64 encoded.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union
import json

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from .utils import b64e, b64d

PrivateKey = Union[ec.EllipticCurvePrivateKey, rsa.RSAPrivateKey]


class IdentityDecodeError(ValueError):
    pass


class KeyType(str, Enum):
    ECDSA = "ecdsa"
    RSA = "rsa"

    @classmethod
    def of(cls, key: PrivateKey) -> "KeyType":
        if isinstance(key, ec.EllipticCurvePrivateKey):
            return cls.ECDSA
        if isinstance(key, rsa.RSAPrivateKey):
            return cls.RSA
        raise TypeError(f"unsupported private key type: {type(key).__name__}")


# --------- per-variant key codecs ----------
def encode_key(key: PrivateKey) -> bytes:
    KeyType.of(key)
    return key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def decode_key(key_type: KeyType, raw: bytes) -> PrivateKey:
    try:
        key = serialization.load_der_private_key(raw, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise IdentityDecodeError(f"malformed {key_type.value} private key: {e}") from e
    expected = ec.EllipticCurvePrivateKey if key_type is KeyType.ECDSA else rsa.RSAPrivateKey
    if not isinstance(key, expected):
        raise IdentityDecodeError(f"stored key is not a {key_type.value} key")
    return key


def generate_key(key_type: KeyType = KeyType.ECDSA) -> PrivateKey:
    if key_type is KeyType.RSA:
        return rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return ec.generate_private_key(ec.SECP256R1())


@dataclass
class IdentityRecord:
    email: str
    key: PrivateKey = field(repr=False)
    registration: Optional[Dict[str, Any]] = None

    @classmethod
    def create(cls, email: str, key_type: KeyType = KeyType.ECDSA) -> "IdentityRecord":
        return cls(email=email, key=generate_key(key_type))

    @property
    def key_type(self) -> KeyType:
        return KeyType.of(self.key)

    @property
    def registered(self) -> bool:
        return self.registration is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Email": self.email,
            "Registration": self.registration,
            "KeyType": self.key_type.value,
            "Key": b64e(encode_key(self.key)),
        }

    def to_json_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True).encode("utf-8")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IdentityRecord":
        if not isinstance(data, dict):
            raise IdentityDecodeError("identity record must be a JSON object")
        tag = data.get("KeyType")
        try:
            key_type = KeyType(tag)
        except ValueError:
            raise IdentityDecodeError(f"unknown key type: {tag!r}") from None
        try:
            raw = b64d(data["Key"])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise IdentityDecodeError(f"missing or invalid key material: {e}") from e
        return cls(
            email=data.get("Email", ""),
            key=decode_key(key_type, raw),
            registration=data.get("Registration"),
        )

    @classmethod
    def from_json_bytes(cls, raw: bytes) -> "IdentityRecord":
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise IdentityDecodeError(f"identity record is not valid JSON: {e}") from e
        return cls.from_dict(data)
