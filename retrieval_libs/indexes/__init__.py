"""Scorer and content store adapters.

Primary components:
- ``base``: abstract ``LexicalScorer``, ``VectorScorer`` and ``ContentStore``
  interfaces, ``RankedHit`` and the index-level exceptions.
- ``postgres``: shared asyncpg pool with the pgvector codec.
- ``lexical`` / ``pgvector`` / ``documents``: PostgreSQL implementations.
- ``memory``: in-process BM25 and vector scorers over one corpus.
- ``factory``: helpers to construct a backend from typed config.

Guidance:
- Prefer constructing via ``factory.create_index_backend_from_config`` so
  runtime services remain decoupled from specific backends.
"""
