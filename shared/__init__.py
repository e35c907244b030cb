"""
Shared utilities for the Task Manager API.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types
- responses: The response envelope
- base_service: FastAPI application scaffolding

Do not import from service_* packages into shared/.
"""
