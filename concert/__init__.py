"""
Concert
=======
Keeps TLS certificates for catalog-discovered services valid.

Services tag themselves ``concert-<domain>`` in the service catalog; Concert
works out which of those domains have no certificate or one close to
expiry, obtains fresh certificates from an ACME authority, and stores key
and chain in the key-value store.

Provides:
- Identity records and their durable store
- Certificate record store keyed by domain
- Domain selection, the reconcile engine, and its triggers
"""

__version__ = "0.1.0"
