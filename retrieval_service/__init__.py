"""Hybrid retrieval service: BM25 + vector search fused with RRF."""
