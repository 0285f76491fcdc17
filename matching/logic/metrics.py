"""
Matching Metrics

Prometheus metrics for the matching pipeline: request counts per
algorithm version, latency, programs evaluated, cache hits and misses,
and result categories. Each request is also logged at INFO.

Every MetricsCollector owns its CollectorRegistry, so one app (or one
test) never sees another's counts. The /matches/metrics endpoint
exposes the registry in the Prometheus text format.
"""

import logging
from typing import Dict, List, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram
from pydantic import BaseModel, Field

from .constants import MatchCategory, ALGORITHM_VERSION_BASELINE, ALGORITHM_VERSION_V10
from .contracts import MatchResult
from .selectivity import is_high_achiever

logger = logging.getLogger(__name__)

LATENCY_BUCKETS_MS = [5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000]


class MatchingMetrics(BaseModel):
    student_id: str
    latency_ms: float
    total_programs: int
    skipped_programs: int = 0
    results_returned: int
    cache_hits: int = 0
    cache_misses: int = 0
    student_points: Optional[int] = None
    is_high_achiever: bool = False
    algorithm_version: str
    v10_features: List[str] = Field(default_factory=list)
    category_distribution: Dict[str, int] = Field(default_factory=dict)

    @property
    def cache_hit_rate(self) -> Optional[float]:
        total = self.cache_hits + self.cache_misses
        return self.cache_hits / total if total else None


class AggregatedMetrics(BaseModel):
    """Totals read back from the registry for the health endpoint."""
    request_count: int = 0
    v10_request_count: int = 0
    avg_latency_ms: float = 0.0
    avg_programs_evaluated: float = 0.0
    skipped_programs: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_hit_rate: float = 0.0
    category_totals: Dict[str, int] = Field(default_factory=dict)
    high_achiever_requests: int = 0


def category_distribution(results: List[MatchResult]) -> Dict[str, int]:
    counts = {category.value: 0 for category in MatchCategory}
    for result in results:
        if result.category is not None:
            counts[result.category.category.value] += 1
    return counts


def build_metrics(
    student_id: str,
    student_points: Optional[int],
    results: List[MatchResult],
    latency_ms: float,
    total_programs: int,
    algorithm_version: str,
    v10_features: List[str],
    cache_hits: int = 0,
    cache_misses: int = 0,
    skipped_programs: int = 0
) -> MatchingMetrics:
    return MatchingMetrics(
        student_id=student_id,
        latency_ms=round(latency_ms, 2),
        total_programs=total_programs,
        skipped_programs=skipped_programs,
        results_returned=len(results),
        cache_hits=cache_hits,
        cache_misses=cache_misses,
        student_points=student_points,
        is_high_achiever=is_high_achiever(student_points),
        algorithm_version=algorithm_version,
        v10_features=v10_features,
        category_distribution=category_distribution(results),
    )


class MetricsCollector:
    """Prometheus instruments for one app, bound to their own registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.requests_total = Counter(
            "matching_requests_total",
            "Student match requests served",
            ["algorithm_version"],  # v9|v10
            registry=self.registry,
        )
        self.latency_ms = Histogram(
            "matching_request_latency_ms",
            "Student match request latency in milliseconds",
            buckets=LATENCY_BUCKETS_MS,
            registry=self.registry,
        )
        self.programs_evaluated_total = Counter(
            "matching_programs_evaluated_total",
            "Programs scored or read from cache",
            registry=self.registry,
        )
        self.programs_skipped_total = Counter(
            "matching_programs_skipped_total",
            "Malformed catalog programs skipped",
            registry=self.registry,
        )
        self.cache_lookups_total = Counter(
            "matching_cache_lookups_total",
            "Per-program match cache lookups",
            ["result"],  # hit|miss
            registry=self.registry,
        )
        self.results_total = Counter(
            "matching_results_total",
            "Returned matches by category (V10 categorization only)",
            ["category"],
            registry=self.registry,
        )
        self.high_achiever_requests_total = Counter(
            "matching_high_achiever_requests_total",
            "Requests from students at or above the high achiever threshold",
            registry=self.registry,
        )

        # Pre-create labelled series so totals read as 0 before the first request
        for version in (ALGORITHM_VERSION_BASELINE, ALGORITHM_VERSION_V10):
            self.requests_total.labels(algorithm_version=version)
        for result in ("hit", "miss"):
            self.cache_lookups_total.labels(result=result)
        for category in MatchCategory:
            self.results_total.labels(category=category.value)

    def record(self, metrics: MatchingMetrics) -> None:
        self.requests_total.labels(algorithm_version=metrics.algorithm_version).inc()
        self.latency_ms.observe(metrics.latency_ms)
        self.programs_evaluated_total.inc(metrics.total_programs)
        self.programs_skipped_total.inc(metrics.skipped_programs)
        self.cache_lookups_total.labels(result="hit").inc(metrics.cache_hits)
        self.cache_lookups_total.labels(result="miss").inc(metrics.cache_misses)
        for category, count in metrics.category_distribution.items():
            if count:
                self.results_total.labels(category=category).inc(count)
        if metrics.is_high_achiever:
            self.high_achiever_requests_total.inc()

        hit_rate = metrics.cache_hit_rate
        logger.info(
            f"📊 matching student={metrics.student_id} latency={metrics.latency_ms}ms "
            f"programs={metrics.total_programs} skipped={metrics.skipped_programs} "
            f"results={metrics.results_returned} "
            f"cache_hit_rate={f'{hit_rate:.2f}' if hit_rate is not None else 'n/a'} "
            f"version={metrics.algorithm_version} "
            f"v10={','.join(metrics.v10_features) or 'none'}"
        )

    def _value(self, name: str, **labels: str) -> float:
        return self.registry.get_sample_value(name, labels) or 0.0

    def aggregated(self) -> AggregatedMetrics:
        baseline = self._value("matching_requests_total", algorithm_version=ALGORITHM_VERSION_BASELINE)
        v10 = self._value("matching_requests_total", algorithm_version=ALGORITHM_VERSION_V10)
        requests = int(baseline + v10)
        hits = int(self._value("matching_cache_lookups_total", result="hit"))
        misses = int(self._value("matching_cache_lookups_total", result="miss"))

        return AggregatedMetrics(
            request_count=requests,
            v10_request_count=int(v10),
            avg_latency_ms=round(self._value("matching_request_latency_ms_sum") / requests, 2) if requests else 0.0,
            avg_programs_evaluated=(
                round(self._value("matching_programs_evaluated_total") / requests, 2) if requests else 0.0
            ),
            skipped_programs=int(self._value("matching_programs_skipped_total")),
            cache_hits=hits,
            cache_misses=misses,
            cache_hit_rate=round(hits / (hits + misses), 4) if hits + misses else 0.0,
            category_totals={
                c.value: int(self._value("matching_results_total", category=c.value)) for c in MatchCategory
            },
            high_achiever_requests=int(self._value("matching_high_achiever_requests_total")),
        )
