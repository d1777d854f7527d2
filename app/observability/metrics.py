"""Pipeline metrics: counters, timings and gauges to the log stream or StatsD."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable

from statsd import StatsClient

from app.config import Settings, settings as default_settings

logger = logging.getLogger("app.metrics")

COUNTER = "counter"
TIMING = "timing"
GAUGE = "gauge"


@dataclass(frozen=True)
class MetricSample:
    name: str
    kind: str
    value: float
    tags: dict[str, Any] = field(default_factory=dict)
    sample_rate: float = 1.0

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "metric": self.name,
            "type": self.kind,
            "value": round(float(self.value), 4),
            "tags": self.tags,
        }
        if self.sample_rate < 1.0:
            payload["sample_rate"] = round(self.sample_rate, 4)
        return payload


class MetricsReporter:
    """Emits pipeline metrics under a namespace.

    The ``stdout`` backend only logs each sample; ``statsd`` also forwards it over UDP.
    Counters and timings honour ``sample_rate``; gauges are always sent.
    """

    def __init__(
        self,
        *,
        namespace: str = "funding_pipeline",
        backend: str = "stdout",
        sample_rate: float = 1.0,
        disabled: bool = False,
        statsd_client: StatsClient | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.namespace = namespace.strip(".") or "funding_pipeline"
        self.backend = backend.lower()
        self.sample_rate = max(0.0, min(sample_rate, 1.0))
        self.disabled = disabled
        self._statsd = statsd_client
        self._rng = rng

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "MetricsReporter":
        source = settings or default_settings
        backend = (source.metrics_backend or "stdout").lower()
        statsd_client = None
        if backend == "statsd" and not source.metrics_disable:
            try:
                statsd_client = StatsClient(
                    host=source.metrics_statsd_host,
                    port=source.metrics_statsd_port,
                    prefix="",
                )
            except OSError as exc:  # pragma: no cover - socket setup failure
                logger.warning("metrics.backend_error", extra={"metric": "statsd.init", "error": type(exc).__name__})
        return cls(
            namespace=source.metrics_namespace,
            backend=backend,
            sample_rate=source.metrics_sample_rate,
            disabled=source.metrics_disable,
            statsd_client=statsd_client,
        )

    def increment(self, metric: str, value: float = 1.0, *, tags: dict[str, Any] | None = None) -> None:
        self._emit(COUNTER, metric, value, tags)

    def timing(self, metric: str, value_ms: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit(TIMING, metric, value_ms, tags)

    def gauge(self, metric: str, value: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit(GAUGE, metric, value, tags)

    def qualified(self, metric: str) -> str:
        name = (metric or "").strip(". ")
        if not name:
            return self.namespace
        if name.startswith(f"{self.namespace}."):
            return name
        return f"{self.namespace}.{name}"

    def _emit(self, kind: str, metric: str, value: float, tags: dict[str, Any] | None) -> None:
        if self.disabled or value is None:
            return
        rate = 1.0 if kind == GAUGE else self.sample_rate
        if rate < 1.0 and self._rng() >= rate:
            return
        sample = MetricSample(self.qualified(metric), kind, value, dict(tags or {}), rate)
        logger.debug("pipeline.metric", extra={"metrics": sample.as_payload()})
        if self._statsd is not None:
            self._forward(sample)

    def _forward(self, sample: MetricSample) -> None:
        try:
            if sample.kind == TIMING:
                self._statsd.timing(sample.name, sample.value, rate=sample.sample_rate)
            elif sample.kind == GAUGE:
                self._statsd.gauge(sample.name, sample.value)
            else:
                self._statsd.incr(sample.name, sample.value, rate=sample.sample_rate)
        except OSError as exc:  # pragma: no cover - UDP send failure
            logger.warning(
                "metrics.backend_error",
                extra={"metric": sample.name, "backend": self.backend, "error": type(exc).__name__},
            )


metrics = MetricsReporter.from_settings()
