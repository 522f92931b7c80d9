"""Operational scripts for the retrieval service.

Scripts include:
- ``init_db.py``: create the documents table and its lexical and vector indexes.
"""
