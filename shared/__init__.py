"""
Shared utilities for the ACL evaluator.

This package aggregates common building blocks consumed by the engine:

- config: Engine configuration via pydantic-settings
- logging: Structured logging via structlog
- errors: Canonical error types and responses

Do not import from service_acl into shared/.
"""
