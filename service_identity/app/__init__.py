"""
Identity Service package.

- app.keys: Signing key listing fetch and time-based cache.
- app.validation: Identity token verification and request dependencies.
- app.credentials: Service-account assertion signing and token exchange.
- app.store: Typed value codec and document store REST client.
- app.main: FastAPI application exposing verification and session routes.

Module import must not perform network calls. All IO happens in route
handlers or in explicit client calls.
"""
