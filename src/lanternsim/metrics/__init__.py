"""
Metric estimators built on the simulator.

- FirstContentfulPaint: first paint based graph, render-blocking work only
- LargestContentfulPaint: same graph cut at LCP, ignoring offscreen images
- LCPLoadDelay: when the LCP image request starts
- Interactive: LCP plus the last long main-thread task
"""

from lanternsim.metrics.base import Estimate, LanternMetric, MetricResult
from lanternsim.metrics.coefficients import CoefficientTable, MetricCoefficients
from lanternsim.metrics.first_contentful_paint import FirstContentfulPaint, get_first_paint_based_graph
from lanternsim.metrics.interactive import Interactive
from lanternsim.metrics.largest_contentful_paint import LargestContentfulPaint
from lanternsim.metrics.lcp_load_delay import LCPLoadDelay
from lanternsim.metrics.navigation import NavigationContext
from lanternsim.metrics.runner import METRICS, MetricInputs, MetricOutcome, compute_metric, compute_metrics

__all__ = [
    "Estimate",
    "LanternMetric",
    "MetricResult",
    "CoefficientTable",
    "MetricCoefficients",
    "FirstContentfulPaint",
    "get_first_paint_based_graph",
    "Interactive",
    "LargestContentfulPaint",
    "LCPLoadDelay",
    "NavigationContext",
    "METRICS",
    "MetricInputs",
    "MetricOutcome",
    "compute_metric",
    "compute_metrics",
]
