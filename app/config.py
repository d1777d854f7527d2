from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Funding Verification Pipeline"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Providers
    openai_api_key: str | None = None
    tavily_api_key: str | None = None
    crunchbase_api_key: str | None = None
    pdl_api_key: str | None = None

    # Inference
    inference_model: str = "gpt-4o-mini"
    inference_temperature: float = 0.1
    inference_max_output_tokens: int = 2048
    http_timeout_seconds: float = 10.0

    # Verification (product-chosen constants, tune against labeled data)
    confidence_threshold: float = 0.75
    min_sources_required: int = 2
    consensus_weight: float = 0.7
    reliability_weight: float = 0.3
    field_confidence_cap: float = 0.95
    discrepancy_consensus_threshold: float = 0.7
    majority_consensus_threshold: float = 0.5
    missing_field_confidence: float = 0.1
    draft_reliability: float = 0.8
    default_source_reliability: float = 0.60
    max_verification_sources: int = 10
    results_per_query: int = 3
    source_content_chars: int = 2000
    failsafe_confidence: float = 0.1

    # Workflow
    max_batch_size: int = 25
    high_priority_confidence: float = 0.3

    # Pacing / retries
    inference_interval_seconds: float = 1.0
    search_interval_seconds: float = 0.5
    fetch_interval_seconds: float = 0.25
    verification_interval_seconds: float = 2.0
    profiling_interval_seconds: float = 1.5
    retry_attempts: int = 3
    retry_base_delay_seconds: float = 0.5

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "funding_pipeline"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = []

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
