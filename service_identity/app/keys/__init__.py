"""
Signing key package.

Retrieves and caches the identity provider's published RSA public keys.
Keys are cached for a fixed TTL and replaced wholesale on refresh; lookups
select by key id (kid).
"""

from .cache import PublicKeyCache, SigningKey

__all__ = ["PublicKeyCache", "SigningKey"]
