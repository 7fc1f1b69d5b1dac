"""
Service-account authentication for the document store.

A self-issued RS256 assertion is exchanged at the OAuth2 token endpoint
(JWT-bearer grant) for a short-lived access token. Tokens are cached per
credential, scope and token endpoint and refreshed shortly before they
expire.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import json
import re
import textwrap
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

import httpx
from jose import jwk, jwt
from jose.backends.base import Key
from jose.exceptions import JOSEError

from shared.config import BaseConfig
from shared.errors import AuthExchangeError, ConfigurationError, KeyImportError
from shared.logging import get_logger
from shared.metrics import MetricsCollector, get_metrics_collector

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
DEFAULT_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
DEFAULT_STORE_SCOPE = "https://www.googleapis.com/auth/datastore"
ASSERTION_LIFETIME = 3600

_BASE64_LINE = re.compile(r"^[A-Za-z0-9+/=]+$")


def _pem_body(pem_text: str) -> str:
    # Marker lines are dropped by shape, so odd dash glyphs in them are harmless.
    text = pem_text.replace("\\n", "\n")
    lines = (line.strip() for line in text.splitlines())
    return "".join(line for line in lines if _BASE64_LINE.match(line))


def sanitize_private_key(pem_text: str) -> str:
    """Rebuild a canonical PEM from loosely formatted private key text.

    Handles literal ``\\n`` escapes and non-ASCII dashes in the
    BEGIN/END markers by keeping only base64 lines.
    """
    body = _pem_body(pem_text)
    if not body:
        raise KeyImportError("Private key contains no base64 body")

    try:
        base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise KeyImportError(f"Failed to import private key: {exc}") from exc

    label = "RSA PRIVATE KEY" if "RSA PRIVATE KEY" in pem_text else "PRIVATE KEY"
    wrapped = "\n".join(textwrap.wrap(body, 64))
    return f"-----BEGIN {label}-----\n{wrapped}\n-----END {label}-----\n"


def load_signing_key(pem_text: str) -> Key:
    """Import an RSA private key for RS256 signing."""
    pem = sanitize_private_key(pem_text)
    try:
        return jwk.construct(pem, algorithm="RS256")
    except (JOSEError, ValueError, TypeError) as exc:
        raise KeyImportError(f"Failed to import private key: {exc}") from exc


@dataclass(frozen=True)
class ServiceCredential:
    """Service-account email and private key, loaded once from configuration."""

    client_email: str
    private_key_pem: str

    @classmethod
    def from_config(cls, config: BaseConfig) -> "ServiceCredential":
        missing = []
        if not config.client_email:
            missing.append("client_email")
        if not config.private_key:
            missing.append("private_key")
        if missing:
            raise ConfigurationError(
                f"Service account credentials not configured (missing: {', '.join(missing)})",
                details={"missing": missing},
            )
        return cls(client_email=config.client_email, private_key_pem=config.private_key)

    @property
    def fingerprint(self) -> str:
        digest = hashlib.sha256()
        digest.update(self.client_email.encode("utf-8"))
        digest.update(b"\0")
        digest.update(_pem_body(self.private_key_pem).encode("ascii"))
        return digest.hexdigest()


@dataclass(frozen=True)
class AccessToken:
    """OAuth2 bearer token and its expiry (unix seconds)."""

    token: str
    expires_at: float

    def is_valid(self, margin: float = 0.0) -> bool:
        return time.time() + margin < self.expires_at


class AccessTokenCache:
    """Single-flight access token cache keyed by authenticator cache key."""

    def __init__(self, refresh_margin: float = 300.0):
        self.refresh_margin = refresh_margin
        self._tokens: Dict[str, AccessToken] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, fingerprint: str) -> Optional[AccessToken]:
        """Return the cached token if it is outside the refresh margin."""
        token = self._tokens.get(fingerprint)
        if token is not None and token.is_valid(self.refresh_margin):
            return token
        return None

    async def get_or_refresh(
        self,
        fingerprint: str,
        refresh: Callable[[], Awaitable[AccessToken]],
    ) -> AccessToken:
        token = self.get(fingerprint)
        if token is not None:
            return token

        lock = self._locks.setdefault(fingerprint, asyncio.Lock())
        async with lock:
            # Another caller may have refreshed while we waited.
            token = self.get(fingerprint)
            if token is not None:
                return token

            token = await refresh()
            self._tokens[fingerprint] = token
            return token

    def invalidate(self, fingerprint: Optional[str] = None) -> None:
        if fingerprint is None:
            self._tokens.clear()
        else:
            self._tokens.pop(fingerprint, None)


default_token_cache = AccessTokenCache()


class ServiceAccountAuthenticator:
    """Obtains document-store access tokens for a service account."""

    def __init__(
        self,
        credential: ServiceCredential,
        *,
        token_endpoint: str = DEFAULT_TOKEN_ENDPOINT,
        scope: str = DEFAULT_STORE_SCOPE,
        client: Optional[httpx.AsyncClient] = None,
        http_timeout: float = 10.0,
        token_cache: Optional[AccessTokenCache] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.credential = credential
        self.token_endpoint = token_endpoint
        self.scope = scope
        self.token_cache = token_cache if token_cache is not None else default_token_cache
        self.logger = get_logger("identity.credentials").bind(client_email=credential.client_email)
        self.metrics = metrics or get_metrics_collector()

        self._client = client or httpx.AsyncClient(timeout=http_timeout)
        self._signing_key: Optional[Key] = None

    @classmethod
    def from_config(cls, config: BaseConfig, **kwargs) -> "ServiceAccountAuthenticator":
        kwargs.setdefault("token_endpoint", config.token_endpoint)
        kwargs.setdefault("scope", config.store_scope)
        kwargs.setdefault("http_timeout", config.http_timeout)
        if "token_cache" not in kwargs and config.token_refresh_margin != default_token_cache.refresh_margin:
            kwargs["token_cache"] = AccessTokenCache(refresh_margin=config.token_refresh_margin)
        return cls(ServiceCredential.from_config(config), **kwargs)

    async def close(self) -> None:
        await self._client.aclose()

    @property
    def signing_key(self) -> Key:
        if self._signing_key is None:
            self._signing_key = load_signing_key(self.credential.private_key_pem)
        return self._signing_key

    def build_assertion(self, now: Optional[int] = None) -> str:
        """Sign the JWT-bearer assertion presented to the token endpoint."""
        issued_at = int(time.time()) if now is None else now
        claims = {
            "iss": self.credential.client_email,
            "scope": self.scope,
            "aud": self.token_endpoint,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME,
        }
        try:
            return jwt.encode(claims, self.signing_key, algorithm="RS256")
        except JOSEError as exc:
            raise KeyImportError(f"Failed to sign assertion: {exc}") from exc

    async def exchange(self) -> AccessToken:
        """Perform a full assertion exchange, bypassing the cache."""
        assertion = self.build_assertion()
        response = await self._client.post(
            self.token_endpoint,
            data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
        )

        try:
            body = response.json()
        except ValueError as exc:
            self.metrics.increment_counter("access_token_exchanges_total", status="error")
            raise AuthExchangeError(
                f"Failed to get access token: non-JSON response (status {response.status_code})",
                details={"status_code": response.status_code},
            ) from exc

        if not isinstance(body, dict) or not body.get("access_token"):
            body = body if isinstance(body, dict) else {}
            error = body.get("error")
            description = body.get("error_description")
            self.metrics.increment_counter("access_token_exchanges_total", status="error")
            self.logger.error(
                "Access token exchange failed",
                status_code=response.status_code,
                error=error,
                error_description=description,
            )
            raise AuthExchangeError(
                f"Failed to get access token: {description or error or json.dumps(body)}",
                error=error,
                error_description=description,
                details={"status_code": response.status_code},
            )

        try:
            expires_in = int(body.get("expires_in", ASSERTION_LIFETIME))
        except (TypeError, ValueError):
            expires_in = ASSERTION_LIFETIME

        self.metrics.increment_counter("access_token_exchanges_total", status="ok")
        self.logger.info("Access token issued", expires_in=expires_in)
        return AccessToken(token=body["access_token"], expires_at=time.time() + expires_in)

    @property
    def cache_key(self) -> str:
        """Token cache key: tokens are only shared for the same credential, scope and endpoint."""
        digest = hashlib.sha256()
        for part in (self.credential.fingerprint, self.scope, self.token_endpoint):
            digest.update(part.encode("utf-8"))
            digest.update(b"\0")
        return digest.hexdigest()

    async def get_access_token(self) -> AccessToken:
        """Return a cached access token, exchanging a new one when it nears expiry."""
        return await self.token_cache.get_or_refresh(self.cache_key, self.exchange)
