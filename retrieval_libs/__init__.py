"""Shared libraries for the hybrid retrieval service.

Subpackages:
- ``retrieval_libs.common``: configuration, logging and metrics.
- ``retrieval_libs.indexes``: scorer and content store abstractions with
  PostgreSQL and in-memory backends.

Notes:
- Avoid service-specific logic; keep modules cohesive and broadly useful.
"""
