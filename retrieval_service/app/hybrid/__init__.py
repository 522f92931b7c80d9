"""Hybrid search components for lexical + vector ranking.

Includes the ``SearchManager`` which runs the BM25 and vector scorers
concurrently and merges their ranked lists.
"""
