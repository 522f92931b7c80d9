"""Search ranking and result fusion components.

Contents
- ``fusion``: weighted Reciprocal Rank Fusion with deterministic tie-breaks
"""
