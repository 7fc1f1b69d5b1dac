"""
Identity token verification.

Checks run in a fixed order (structure, expiry, issuer, audience, key id,
signature) and every rejection is reported as a distinct
``VerificationFailure`` with a human-readable reason.
"""

import json
import time
from enum import Enum
from typing import Any, Dict, Optional

from jose import jwk
from jose.exceptions import JWKError
from jose.utils import base64url_decode
from pydantic import BaseModel

from shared.logging import get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from ..keys.cache import PublicKeyCache


class VerificationFailure(str, Enum):
    """Reasons a token can be rejected."""

    MALFORMED_TOKEN = "malformed_token"
    EXPIRED = "expired"
    ISSUER_MISMATCH = "issuer_mismatch"
    AUDIENCE_MISMATCH = "audience_mismatch"
    UNKNOWN_KEY = "unknown_key"
    BAD_SIGNATURE = "bad_signature"


class VerifiedIdentity(BaseModel):
    """Caller identity extracted from a verified token."""
    subject_id: str
    email: str = ""


class VerificationResult(BaseModel):
    """Outcome of a single verification."""
    ok: bool
    identity: Optional[VerifiedIdentity] = None
    failure: Optional[VerificationFailure] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, identity: VerifiedIdentity) -> "VerificationResult":
        return cls(ok=True, identity=identity)

    @classmethod
    def rejected(cls, failure: VerificationFailure, reason: str) -> "VerificationResult":
        return cls(ok=False, failure=failure, reason=reason)


class _Rejected(Exception):
    """Internal short-circuit carrying a verification failure."""

    def __init__(self, failure: VerificationFailure, reason: str):
        super().__init__(reason)
        self.failure = failure
        self.reason = reason


class TokenVerifier:
    """Verifies compact RS256 identity tokens against the provider's published keys."""

    def __init__(
        self,
        key_cache: PublicKeyCache,
        project_id: str,
        issuer_host: str = "securetoken.google.com",
        *,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.key_cache = key_cache
        self.project_id = project_id
        self.issuer = f"https://{issuer_host}/{project_id}"
        self.logger = get_logger("identity.verifier")
        self.metrics = metrics or get_metrics_collector()

    async def verify(self, token: str) -> VerificationResult:
        """Verify ``token`` and return the caller identity or the rejection reason.

        Network failures while fetching signing keys propagate.
        """
        try:
            identity = await self._verify(token)
        except _Rejected as rejection:
            self.metrics.increment_counter("token_verifications_total", outcome=rejection.failure.value)
            self.logger.warning(
                "Token verification failed",
                failure=rejection.failure.value,
                reason=rejection.reason,
            )
            return VerificationResult.rejected(rejection.failure, rejection.reason)

        self.metrics.increment_counter("token_verifications_total", outcome="ok")
        self.logger.debug("Token verified", subject_id=identity.subject_id)
        return VerificationResult.success(identity)

    async def _verify(self, token: str) -> VerifiedIdentity:
        parts = token.split(".") if isinstance(token, str) else []
        if len(parts) != 3:
            raise _Rejected(
                VerificationFailure.MALFORMED_TOKEN,
                f"invalid token format (expected 3 segments, got {len(parts)})",
            )
        encoded_header, encoded_payload, encoded_signature = parts

        header = self._decode_segment(encoded_header, "header")
        payload = self._decode_segment(encoded_payload, "payload")

        now = time.time()
        exp = payload.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise _Rejected(VerificationFailure.EXPIRED, "token has no numeric exp claim")
        if exp <= now:
            raise _Rejected(
                VerificationFailure.EXPIRED,
                f"token expired (exp: {exp}, now: {int(now)})",
            )

        issuer = payload.get("iss")
        if issuer != self.issuer:
            raise _Rejected(
                VerificationFailure.ISSUER_MISMATCH,
                f"issuer mismatch (expected: {self.issuer}, got: {issuer})",
            )

        audience = payload.get("aud")
        if audience != self.project_id:
            raise _Rejected(
                VerificationFailure.AUDIENCE_MISMATCH,
                f"audience mismatch (expected: {self.project_id}, got: {audience})",
            )

        kid = header.get("kid")
        key = await self.key_cache.get_key(kid) if isinstance(kid, str) else None
        if key is None:
            raise _Rejected(VerificationFailure.UNKNOWN_KEY, f"signing key not found (kid: {kid})")

        signing_input = f"{encoded_header}.{encoded_payload}".encode("utf-8")
        if not self._signature_matches(key.to_jwk(), signing_input, encoded_signature):
            raise _Rejected(VerificationFailure.BAD_SIGNATURE, "signature verification failed")

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise _Rejected(VerificationFailure.MALFORMED_TOKEN, "token missing subject claim")

        return VerifiedIdentity(subject_id=subject, email=payload.get("email") or "")

    @staticmethod
    def _decode_segment(segment: str, name: str) -> Dict[str, Any]:
        try:
            decoded = json.loads(base64url_decode(segment.encode("ascii")).decode("utf-8"))
        except (ValueError, UnicodeError) as exc:
            raise _Rejected(VerificationFailure.MALFORMED_TOKEN, f"undecodable {name}: {exc}") from exc
        if not isinstance(decoded, dict):
            raise _Rejected(VerificationFailure.MALFORMED_TOKEN, f"{name} is not a JSON object")
        return decoded

    @staticmethod
    def _signature_matches(key_data: Dict[str, str], signing_input: bytes, encoded_signature: str) -> bool:
        try:
            signature = base64url_decode(encoded_signature.encode("ascii"))
            public_key = jwk.construct(dict(key_data, alg="RS256"), algorithm="RS256")
        except (ValueError, UnicodeError, JWKError):
            return False
        return public_key.verify(signing_input, signature)
