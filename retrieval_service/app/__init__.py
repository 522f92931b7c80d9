"""Retrieval service package.

Layout:
- ``api``: HTTP endpoints for search and document ingestion.
- ``hybrid``: lexical + vector search orchestration and request errors.
- ``ranking``: Reciprocal Rank Fusion.
"""
