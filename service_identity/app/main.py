"""
Identity service: token verification and browser session endpoints.
"""

from typing import Dict, Optional

from fastapi import Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from shared.base_service import BaseService
from shared.config import ServiceConfig
from .keys.cache import PublicKeyCache
from .store import collections
from .store.client import DocumentStoreClient
from .validation.dependencies import SESSION_COOKIE, get_auth_user
from .validation.token_verifier import TokenVerifier, VerificationResult, VerifiedIdentity

SESSION_MAX_AGE = 60 * 60  # identity tokens live for one hour


class TokenRequest(BaseModel):
    """Request body carrying an identity token."""
    token: Optional[str] = None


class IdentityService(BaseService):
    """Identity service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        key_cache: Optional[PublicKeyCache] = None,
        store: Optional[DocumentStoreClient] = None,
    ):
        super().__init__("identity", 8010, config=config)

        self.key_cache = key_cache or PublicKeyCache(
            self.config.public_keys_url,
            cache_ttl=self.config.key_cache_ttl,
            http_timeout=self.config.http_timeout,
        )
        self.token_verifier = TokenVerifier(
            self.key_cache,
            self.config.project_id,
            issuer_host=self.config.issuer_host,
        )
        self.store = store

        self.app.state.token_verifier = self.token_verifier
        self.app.state.store = self.store

        self._setup_identity_routes()

    def _setup_identity_routes(self):
        """Set up identity-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "identity",
                "message": "Credit repair platform - Identity Service",
                "version": "1.0.0"
            }

        @self.app.post("/auth/verify", response_model=VerificationResult)
        async def verify_token(request: TokenRequest):
            """Verify an identity token and report the outcome."""
            if not request.token:
                return JSONResponse(status_code=400, content={"error": "Token required"})
            return await self.token_verifier.verify(request.token)

        @self.app.post("/auth/session")
        async def create_session(request: TokenRequest):
            """Store the caller's identity token in an http-only cookie."""
            if not request.token:
                return JSONResponse(status_code=400, content={"error": "Token required"})

            response = JSONResponse(content={"success": True})
            response.set_cookie(
                SESSION_COOKIE,
                request.token,
                httponly=True,
                secure=self.config.env == "production",
                samesite="lax",
                max_age=SESSION_MAX_AGE,
                path="/",
            )
            return response

        @self.app.delete("/auth/session")
        async def delete_session():
            """Clear the session cookie."""
            response = JSONResponse(content={"success": True})
            response.delete_cookie(SESSION_COOKIE, path="/")
            return response

        @self.app.get("/auth/me")
        async def me(identity: VerifiedIdentity = Depends(get_auth_user)):
            """Return the caller's identity and, when a store is configured, their profile."""
            body: Dict[str, object] = {"identity": identity.model_dump()}
            if self.store is not None:
                profile = await self.store.get_doc(collections.USERS, identity.subject_id)
                body["profile"] = profile.fields if profile.exists else None
            return body

    async def _check_dependencies(self) -> Dict[str, str]:
        try:
            await self.key_cache.get_keys()
            return {"signing_keys": "ok"}
        except Exception as exc:
            self.logger.error("Signing key listing unreachable", error=str(exc))
            return {"signing_keys": "error"}

    async def _shutdown(self) -> None:
        await self.key_cache.close()
        if self.store is not None:
            await self.store.close()
            await self.store.authenticator.close()


def create_app(config: Optional[ServiceConfig] = None, **kwargs):
    """Create the identity service application."""
    return IdentityService(config, **kwargs).app


def build_service(config: Optional[ServiceConfig] = None) -> IdentityService:
    """Wire the service from configuration, including the document store when credentials are set."""
    service_config = config or ServiceConfig(service_name="identity", port=8010)
    store = None
    if service_config.project_id and service_config.client_email and service_config.private_key:
        store = DocumentStoreClient.from_config(service_config)
    return IdentityService(service_config, store=store)


if __name__ == "__main__":
    build_service().run()
