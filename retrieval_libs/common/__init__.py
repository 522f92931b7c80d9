"""Common utilities shared across the retrieval service.

Includes:
- ``config``: Pydantic-based service configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.

Import pattern:
- from retrieval_libs.common.config import SearchConfig
- from retrieval_libs.common.logging import configure_logging
"""
