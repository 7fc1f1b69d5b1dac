"""
Signing key cache for identity token verification.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

from shared.errors import ExternalServiceError
from shared.logging import get_logger
from shared.metrics import MetricsCollector, get_metrics_collector


@dataclass(frozen=True)
class SigningKey:
    """A provider public key as published in the key listing."""

    key_id: str
    modulus: str
    exponent: str
    algorithm: str = "RS256"

    @classmethod
    def from_jwk(cls, data: Dict[str, Any]) -> "SigningKey":
        return cls(
            key_id=data["kid"],
            modulus=data["n"],
            exponent=data["e"],
            algorithm=data.get("alg") or "RS256",
        )

    def to_jwk(self) -> Dict[str, str]:
        """Render the key as an RSA JWK suitable for python-jose."""
        return {
            "kty": "RSA",
            "kid": self.key_id,
            "n": self.modulus,
            "e": self.exponent,
            "alg": self.algorithm,
        }


class PublicKeyCache:
    """Fetches the provider's signing keys and caches them for ``cache_ttl`` seconds.

    A failed fetch propagates to the caller; stale keys are never served
    past their expiry.
    """

    def __init__(
        self,
        keys_url: str,
        cache_ttl: int = 3600,
        *,
        client: Optional[httpx.AsyncClient] = None,
        http_timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.keys_url = keys_url
        self.cache_ttl = cache_ttl
        self.logger = get_logger("identity.keys")
        self.metrics = metrics or get_metrics_collector()

        self._keys: Optional[Tuple[SigningKey, ...]] = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()
        self._client = client or httpx.AsyncClient(timeout=http_timeout)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _is_fresh(self) -> bool:
        return self._keys is not None and time.time() < self._expires_at

    async def get_keys(self, force_refresh: bool = False) -> Tuple[SigningKey, ...]:
        """Return the current signing keys, fetching them when the cache is stale."""
        if not force_refresh and self._is_fresh():
            return self._keys

        async with self._lock:
            if not force_refresh and self._is_fresh():
                return self._keys

            try:
                keys = await self._fetch_keys()
            except Exception as exc:
                self.metrics.increment_counter("signing_key_refresh_total", status="error")
                self.logger.error("Failed to fetch signing keys", url=self.keys_url, error=str(exc))
                raise

            self._keys = keys
            self._expires_at = time.time() + self.cache_ttl
            self.metrics.increment_counter("signing_key_refresh_total", status="ok")
            self.logger.info(
                "Signing keys refreshed",
                keys_count=len(keys),
                key_ids=[key.key_id for key in keys],
            )
            return keys

    async def get_key(self, key_id: str) -> Optional[SigningKey]:
        """Return the cached key with the given id, or None."""
        for key in await self.get_keys():
            if key.key_id == key_id:
                return key
        return None

    async def _fetch_keys(self) -> Tuple[SigningKey, ...]:
        response = await self._client.get(self.keys_url)
        response.raise_for_status()
        payload = response.json()

        entries = payload.get("keys") if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            raise ExternalServiceError("key-listing", "Response missing key array")

        keys = []
        for entry in entries:
            if not isinstance(entry, dict) or not all(field in entry for field in ("kid", "n", "e")):
                self.logger.warning("Skipping malformed key listing entry")
                continue
            keys.append(SigningKey.from_jwk(entry))
        return tuple(keys)

    def clear(self) -> None:
        """Drop the cached keys so the next lookup re-fetches."""
        self._keys = None
        self._expires_at = 0.0
        self.logger.info("Signing key cache cleared")
