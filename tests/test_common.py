"""Tests for common utilities."""

import pytest
from prometheus_client import CollectorRegistry
from pydantic import ValidationError

from retrieval_libs.common.config import BaseConfig, IndexerConfig, SearchConfig, get_config
from retrieval_libs.common.logging import configure_logging, log_performance
from retrieval_libs.common.metrics import MetricsCollector


def test_config_loading():
    """Test configuration loading."""
    config = BaseConfig()
    assert config.retrieval_env == "local"
    assert config.retrieval_log_level == "INFO"
    assert config.retrieval_vector_dimension == 1536
    assert config.retrieval_vector_metric == "cosine"


def test_search_config():
    """Test search service configuration."""
    config = SearchConfig()
    assert config.retrieval_search_port == 9007
    assert config.retrieval_per_source_limit == 20
    assert config.retrieval_final_limit == 10
    assert config.retrieval_rrf_k == 60.0
    assert config.retrieval_partial_failure_policy == "degrade"


def test_config_reads_environment(monkeypatch):
    """Test environment variables override defaults."""
    monkeypatch.setenv("RETRIEVAL_VECTOR_DIMENSION", "768")
    monkeypatch.setenv("RETRIEVAL_PARTIAL_FAILURE_POLICY", "fail")
    monkeypatch.setenv("RETRIEVAL_INDEX_BACKEND", "memory")

    config = SearchConfig()

    assert config.retrieval_vector_dimension == 768
    assert config.retrieval_partial_failure_policy == "fail"
    assert config.retrieval_index_backend == "memory"


def test_config_rejects_unknown_policy(monkeypatch):
    monkeypatch.setenv("RETRIEVAL_PARTIAL_FAILURE_POLICY", "ignore")

    with pytest.raises(ValidationError):
        SearchConfig()


def test_get_config():
    assert isinstance(get_config("search"), SearchConfig)
    assert isinstance(get_config("indexer"), IndexerConfig)
    assert type(get_config("unknown")) is BaseConfig
    assert get_config("indexer").retrieval_hnsw_m == 16


def test_logging_configuration():
    """Test logging configuration."""
    # This should not raise an exception
    configure_logging("test-service", "INFO", "json", env="test")
    configure_logging("test-service", "debug", "console")
    log_performance("hybrid_search", 12.5, results_count=3)
    log_performance("hybrid_search", 900.0, slow_threshold_ms=500.0)


@pytest.mark.parametrize("level,fmt", [("VERBOSE", "json"), ("INFO", "xml")])
def test_logging_rejects_unknown_settings(level, fmt):
    with pytest.raises(ValueError):
        configure_logging("test-service", level, fmt)


def test_metrics_collector():
    """Test metrics collector."""
    collector = MetricsCollector("test-service")
    assert collector.service_name == "test-service"

    # Test metrics recording
    collector.record_http_request("POST", "/api/v1/search", 200, 0.1)
    collector.record_search("degraded", 0.05)
    collector.record_scorer_call("lexical", 0.01)
    collector.record_scorer_failure("vector", "index_unavailable")
    collector.record_document_operation("upsert", 3)

    # Test metrics retrieval
    metrics = collector.get_metrics()
    assert isinstance(metrics, str)
    assert "http_requests_total" in metrics
    assert 'retrieval_search_requests_total{outcome="degraded"} 1.0' in metrics
    assert 'retrieval_document_operations_total{operation="upsert"} 3.0' in metrics


def test_metrics_collectors_are_isolated():
    registry = CollectorRegistry()
    first = MetricsCollector("a", registry=registry)
    second = MetricsCollector("b")

    first.record_search("ok", 0.01)

    assert registry.get_sample_value("retrieval_search_requests_total", {"outcome": "ok"}) == 1.0
    assert "retrieval_search_requests_total{" not in second.get_metrics()
