"""API subpackage for the retrieval service.

Routers expose endpoints for hybrid search, document (de)indexing and index
stats. The transport layer remains thin and delegates to ``SearchManager``.
"""
