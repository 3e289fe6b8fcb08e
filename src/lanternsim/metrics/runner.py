"""
Metric runner: estimate several metrics for one observed load.

The page graph, network analysis and simulator are built once through the
computed cache and shared by every metric. Metrics that build on another
metric (LCP on FCP, TTI on LCP) get its result from the same cache, so each
metric is simulated at most once per input set even when metrics run on
several threads.

A failure in one metric is recorded in its outcome and does not stop the
others.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Sequence

from lanternsim.core.cache import ComputedCache, cache_key
from lanternsim.core.errors import LanternError, MetricError
from lanternsim.core.graph_builder import page_graph
from lanternsim.core.network_analyzer import analyze_network
from lanternsim.core.records import CpuTask, NetworkRequest
from lanternsim.core.settings import ThrottlingSettings, load_simulator
from lanternsim.metrics.base import LanternMetric, MetricResult
from lanternsim.metrics.coefficients import CoefficientTable
from lanternsim.metrics.first_contentful_paint import FirstContentfulPaint
from lanternsim.metrics.interactive import Interactive
from lanternsim.metrics.largest_contentful_paint import LargestContentfulPaint
from lanternsim.metrics.lcp_load_delay import LCPLoadDelay
from lanternsim.metrics.navigation import NavigationContext

logger = logging.getLogger(__name__)


METRICS: dict[str, type[LanternMetric]] = {
    metric.name: metric
    for metric in (FirstContentfulPaint, LargestContentfulPaint, LCPLoadDelay, Interactive)
}


@dataclass(frozen=True)
class MetricInputs:
    """Everything a metric estimate depends on. Hashes by content."""

    requests: tuple[NetworkRequest, ...]
    tasks: tuple[CpuTask, ...]
    navigation: NavigationContext
    settings: ThrottlingSettings
    coefficients: CoefficientTable


@dataclass(frozen=True)
class MetricOutcome:
    """Result or error of one metric."""

    name: str
    result: MetricResult | None = None
    error: LanternError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_dict(self) -> dict:
        if self.result is not None:
            return {"name": self.name, **self.result.as_dict()}
        return {"name": self.name, "error": type(self.error).__name__, "message": str(self.error)}


def compute_metric(name: str, inputs: MetricInputs, cache: ComputedCache) -> MetricResult:
    """Compute one metric (and, through the cache, the metrics it needs)."""
    try:
        metric_cls = METRICS[name]
    except KeyError:
        raise MetricError(f"Unknown metric {name!r}", metric_name=name) from None

    def compute() -> MetricResult:
        graph = page_graph.request(inputs.requests, inputs.tasks, cache=cache)
        analysis = analyze_network.request(inputs.requests, cache=cache)
        simulator = load_simulator.request(inputs.settings, analysis, cache=cache)
        extras = {
            required: compute_metric(required, inputs, cache)
            for required in metric_cls.required_metrics
        }
        return metric_cls().compute(graph, inputs.navigation, simulator, inputs.coefficients, extras)

    return cache.get_or_compute(cache_key(f"metric:{name}", inputs), compute)


def compute_metrics(
    requests: Iterable[NetworkRequest],
    tasks: Iterable[CpuTask],
    navigation: NavigationContext,
    settings: ThrottlingSettings | None = None,
    *,
    metrics: Sequence[str] | None = None,
    cache: ComputedCache | None = None,
    coefficients: CoefficientTable | None = None,
    max_workers: int | None = None,
) -> dict[str, MetricOutcome]:
    """
    Estimate metrics for one observed page load.

    Args:
        requests: Observed network requests
        tasks: Observed main-thread tasks
        navigation: Observed navigation events
        settings: Throttling settings (default: simulated mobile slow 4G)
        metrics: Metric names to compute (default: all)
        cache: Shared computed cache (a fresh one if None)
        coefficients: Coefficient table (default: packaged table)
        max_workers: Run metrics on a thread pool when > 1

    Returns:
        name -> MetricOutcome, in the requested order

    Raises:
        GraphConstructionError: the page graph cannot be built
        NoTimingInformationError: no usable network timing at all
        ResourceLimitConfigError: invalid settings
    """
    inputs = MetricInputs(
        requests=tuple(requests),
        tasks=tuple(tasks),
        navigation=navigation,
        settings=settings or ThrottlingSettings(),
        coefficients=coefficients or CoefficientTable.default(),
    )
    cache = cache if cache is not None else ComputedCache()
    names = list(metrics) if metrics is not None else list(METRICS)

    # Shared artifacts fail for every metric alike, so they are not isolated
    page_graph.request(inputs.requests, inputs.tasks, cache=cache)
    analysis = analyze_network.request(inputs.requests, cache=cache)
    load_simulator.request(inputs.settings, analysis, cache=cache)

    def run(name: str) -> MetricOutcome:
        try:
            return MetricOutcome(name, result=compute_metric(name, inputs, cache))
        except LanternError as exc:
            logger.warning("Metric %s failed: %s", name, exc)
            return MetricOutcome(name, error=exc)

    if max_workers is not None and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(executor.map(run, names))
    else:
        outcomes = [run(name) for name in names]

    return {outcome.name: outcome for outcome in outcomes}
