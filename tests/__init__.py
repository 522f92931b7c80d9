"""Tests for the hybrid retrieval service.

Unit tests cover fusion, both index backends (PostgreSQL adapters against a
fake asyncpg pool) and the search manager's failure policy. Contract tests
drive the HTTP API on the in-memory backend. Integration tests need a live
PostgreSQL with pgvector and are skipped otherwise.
"""
