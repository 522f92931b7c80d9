"""API routes for the retrieval service."""

import time
from typing import Dict, List, Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import structlog

from retrieval_libs.indexes.base import DimensionMismatch, Document, IndexUnavailable, RetrievalError
from ..hybrid.errors import BothSourcesFailed, InvalidOptions, PartialSourceFailure
from ..hybrid.search_manager import SearchManager, SearchOptions

logger = structlog.get_logger("retrieval_service.api")

router = APIRouter()

ERROR_STATUS = {
    InvalidOptions: 422,
    DimensionMismatch: 400,
    PartialSourceFailure: 503,
    BothSourcesFailed: 503,
    IndexUnavailable: 503,
}


class SearchRequest(BaseModel):
    """Request model for search endpoint."""
    query: str = Field(..., description="Search query text")
    embedding: List[float] = Field(..., description="Query embedding")
    per_source_limit: Optional[int] = Field(None, description="Candidates requested from each scorer")
    final_limit: Optional[int] = Field(None, description="Maximum number of fused results")
    weights: Optional[Dict[str, float]] = Field(None, description="Per-source weights, e.g. {'lexical': 0.3, 'vector': 0.7}")
    smoothing_k: Optional[float] = Field(None, description="RRF smoothing constant")
    partial_failure_policy: Optional[str] = Field(None, description="'degrade' or 'fail'")


class SearchResult(BaseModel):
    """Search result model."""
    id: Union[int, str] = Field(..., description="Document ID")
    content: str = Field(..., description="Document content")
    score: float = Field(..., description="Fused RRF score")
    sources: List[str] = Field(..., description="Sources that contributed to the score")
    ranks: Dict[str, int] = Field(..., description="Rank within each contributing source")


class SearchResponse(BaseModel):
    """Response model for search endpoint."""
    results: List[SearchResult] = Field(..., description="Search results")
    total: int = Field(..., description="Total number of results")
    degraded: bool = Field(..., description="True when a source was missing from the fusion")
    missing_sources: List[str] = Field(..., description="Sources that failed")
    latency_ms: float = Field(..., description="Search latency in milliseconds")


class DocumentPayload(BaseModel):
    """A document to index."""
    id: Union[int, str] = Field(..., description="Document ID")
    content: str = Field(..., description="Document text")
    embedding: List[float] = Field(..., description="Document embedding")


class IndexRequest(BaseModel):
    """Request model for index endpoint."""
    documents: List[DocumentPayload] = Field(..., description="Documents to insert or replace")


class IndexResponse(BaseModel):
    """Response model for index endpoint."""
    status: str = Field(..., description="Indexing status")
    indexed: int = Field(..., description="Number of documents written")


def get_search_manager(request: Request) -> SearchManager:
    """Get search manager from application state."""
    return request.app.state.search_manager


def error_response(error: RetrievalError) -> JSONResponse:
    """Map a retrieval error onto a status code and a stable error body."""
    status = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(error, error_type)),
        500,
    )
    content = {"error": error.code, "detail": str(error), "retryable": error.retryable}
    if isinstance(error, PartialSourceFailure):
        content["missing_sources"] = [error.missing_source.value]
    elif isinstance(error, BothSourcesFailed):
        content["missing_sources"] = [source.value for source in error.causes]
    return JSONResponse(status_code=status, content=content)


def merge_weights(defaults: Optional[Dict], overrides: Optional[Dict[str, float]]) -> Optional[Dict[str, float]]:
    """Overlay request weights on the configured ones; unnamed sources keep their default."""
    if overrides is None:
        return defaults
    merged = {getattr(source, "value", source): weight for source, weight in (defaults or {}).items()}
    merged.update(overrides)
    return merged


def build_options(request: SearchRequest, defaults: SearchOptions) -> SearchOptions:
    """Overlay the request's options on the service defaults."""
    return SearchOptions(
        per_source_limit=request.per_source_limit if request.per_source_limit is not None else defaults.per_source_limit,
        final_limit=request.final_limit if request.final_limit is not None else defaults.final_limit,
        weights=merge_weights(defaults.weights, request.weights),
        smoothing_k=request.smoothing_k if request.smoothing_k is not None else defaults.smoothing_k,
        partial_failure_policy=request.partial_failure_policy or defaults.partial_failure_policy,
    )


@router.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    search_manager: SearchManager = Depends(get_search_manager),
):
    """Perform hybrid search."""
    start_time = time.time()

    try:
        options = build_options(request, search_manager.default_options)
        outcome = await search_manager.search(request.query, request.embedding, options)
    except RetrievalError as e:
        logger.warning("Search rejected", code=e.code, error=str(e))
        return error_response(e)

    latency_ms = (time.time() - start_time) * 1000

    return SearchResponse(
        results=[
            SearchResult(
                id=hit.doc_id,
                content=hit.content,
                score=hit.score,
                sources=[source.value for source in hit.sources],
                ranks={source.value: rank for source, rank in hit.ranks.items()},
            )
            for hit in outcome.hits
        ],
        total=len(outcome.hits),
        degraded=outcome.degraded,
        missing_sources=[source.value for source in outcome.missing_sources],
        latency_ms=latency_ms,
    )


@router.post("/documents", response_model=IndexResponse)
async def index_documents(
    request: IndexRequest,
    search_manager: SearchManager = Depends(get_search_manager),
):
    """Insert or replace documents in both indexes."""
    documents = [
        Document(doc_id=doc.id, content=doc.content, embedding=doc.embedding)
        for doc in request.documents
    ]
    try:
        indexed = await search_manager.index_documents(documents)
    except RetrievalError as e:
        logger.error("Indexing failed", count=len(documents), error=str(e))
        return error_response(e)

    return IndexResponse(status="success", indexed=indexed)


@router.delete("/documents/{doc_id}")
async def remove_document(
    doc_id: str,
    search_manager: SearchManager = Depends(get_search_manager),
):
    """Remove a document from both indexes."""
    try:
        deleted = await search_manager.remove_documents([doc_id])
    except RetrievalError as e:
        logger.error("Failed to remove document", doc_id=doc_id, error=str(e))
        return error_response(e)

    if not deleted:
        return JSONResponse(status_code=404, content={"error": "not_found", "detail": f"Document {doc_id} not found"})
    return {"status": "success", "deleted": deleted}


@router.get("/stats")
async def index_stats(search_manager: SearchManager = Depends(get_search_manager)):
    """Return index statistics."""
    try:
        return await search_manager.get_index_stats()
    except RetrievalError as e:
        return error_response(e)
