"""
Token validation package.

Validates identity tokens in a fixed order: structure, expiry, issuer,
audience, key id and RS256 signature. Rejections are returned as tagged
results, never raised, so each request keeps its own failure reason.
"""

from .token_verifier import TokenVerifier, VerificationFailure, VerificationResult, VerifiedIdentity

__all__ = ["TokenVerifier", "VerificationFailure", "VerificationResult", "VerifiedIdentity"]
