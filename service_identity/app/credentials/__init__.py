"""Service-account credentials and OAuth2 access tokens."""

from .service_account import (
    AccessToken,
    AccessTokenCache,
    ServiceAccountAuthenticator,
    ServiceCredential,
    sanitize_private_key,
)

__all__ = [
    "AccessToken",
    "AccessTokenCache",
    "ServiceAccountAuthenticator",
    "ServiceCredential",
    "sanitize_private_key",
]
