"""
Shared utilities for the identity core.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI service scaffolding
- test_helpers: Key pairs, token minting and upstream fakes for tests

Only test_helpers may import from service_* packages.
"""
