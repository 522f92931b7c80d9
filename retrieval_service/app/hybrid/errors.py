"""Request-level errors raised by the retrieval service.

Scorer-level errors (``IndexUnavailable``, ``DimensionMismatch``) live with the
index adapters; these classify what the service makes of them.
"""

from typing import Dict

from retrieval_libs.indexes.base import RetrievalError, Source


class InvalidOptions(RetrievalError):
    """Search options rejected before any I/O."""
    code = "invalid_options"


class PartialSourceFailure(RetrievalError):
    """Exactly one scorer failed."""
    code = "partial_source_failure"
    retryable = True

    def __init__(self, missing_source: Source, cause: RetrievalError):
        self.missing_source = missing_source
        self.cause = cause
        super().__init__(f"{missing_source.value} source failed: {cause}")


class BothSourcesFailed(RetrievalError):
    """Both scorers failed; nothing to fuse."""
    code = "both_sources_failed"
    retryable = True

    def __init__(self, causes: Dict[Source, RetrievalError]):
        self.causes = causes
        details = "; ".join(f"{source.value}: {error}" for source, error in causes.items())
        super().__init__(f"All sources failed: {details}")
