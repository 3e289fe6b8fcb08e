"""
Calibration of metric coefficients against real throttled loads.

For a set of sites we have the optimistic and pessimistic estimates from
an unthrottled trace and the metric actually measured on a throttled
device (the "golden" expectations). The coefficients are the least squares
fit of

    observed ≈ intercept + a · optimistic + b · pessimistic

with a, b ≥ 0. The quality of a coefficient set is judged by the
distribution of absolute percentage errors (p50/p90/p95).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np
from scipy import optimize, stats

from lanternsim.metrics.coefficients import MetricCoefficients

# Metric name -> key in the golden expectations file
GOLDEN_METRIC_KEYS = {
    "first-contentful-paint": "firstContentfulPaint",
    "largest-contentful-paint": "largestContentfulPaint",
    "interactive": "timeToConsistentlyInteractive",
    "lcp-load-delay": "lcpLoadStart",
}


@dataclass
class CalibrationResult:
    """Fitted coefficients and fit quality."""

    coefficients: MetricCoefficients
    r_squared: float      # Of predicted vs observed
    correlation: float    # Pearson r of predicted vs observed
    rmse: float
    predicted: np.ndarray
    residuals: np.ndarray


@dataclass
class ErrorSummary:
    """Absolute percentage error distribution (percent)."""

    p50: float
    p90: float
    p95: float
    mean: float
    n_sites: int


def _as_arrays(*series: Sequence[float]) -> list[np.ndarray]:
    arrays = [np.asarray(s, dtype=np.float64) for s in series]
    lengths = {a.shape for a in arrays}
    if len(lengths) != 1 or arrays[0].ndim != 1:
        raise ValueError("optimistic, pessimistic and observed must be 1D and the same length")
    if arrays[0].size == 0:
        raise ValueError("Need at least one site to calibrate")
    return arrays


def fit_coefficients(
    optimistic: Sequence[float],
    pessimistic: Sequence[float],
    observed: Sequence[float],
    fit_intercept: bool = True,
) -> CalibrationResult:
    """
    Fit blend coefficients by bounded least squares.

    Args:
        optimistic: Optimistic estimates per site (ms)
        pessimistic: Pessimistic estimates per site (ms)
        observed: Measured metric per site (ms)
        fit_intercept: Fit a constant term (else intercept is 0)

    Returns:
        CalibrationResult
    """
    opt, pess, obs = _as_arrays(optimistic, pessimistic, observed)

    columns = [opt, pess]
    lower, upper = [0.0, 0.0], [np.inf, np.inf]
    if fit_intercept:
        columns.insert(0, np.ones_like(opt))
        lower.insert(0, -np.inf)
        upper.insert(0, np.inf)
    design = np.column_stack(columns)

    fit = optimize.lsq_linear(design, obs, bounds=(lower, upper))
    params = fit.x
    if fit_intercept:
        coefficients = MetricCoefficients(float(params[0]), float(params[1]), float(params[2]))
    else:
        coefficients = MetricCoefficients(0.0, float(params[0]), float(params[1]))

    predicted = design @ params
    residuals = obs - predicted
    rmse = float(np.sqrt(np.mean(residuals ** 2)))

    ss_res = float(np.sum(residuals ** 2))
    ss_tot = float(np.sum((obs - obs.mean()) ** 2))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else float("nan")

    if obs.size >= 2 and np.ptp(predicted) > 0 and np.ptp(obs) > 0:
        correlation = float(stats.linregress(predicted, obs).rvalue)
    else:
        correlation = float("nan")

    return CalibrationResult(
        coefficients=coefficients,
        r_squared=r_squared,
        correlation=correlation,
        rmse=rmse,
        predicted=predicted,
        residuals=residuals,
    )


def evaluate_coefficients(
    coefficients: MetricCoefficients,
    optimistic: Sequence[float],
    pessimistic: Sequence[float],
    observed: Sequence[float],
) -> ErrorSummary:
    """
    Error distribution of a coefficient set.

    Sites with a non-positive observed value are skipped.
    """
    opt, pess, obs = _as_arrays(optimistic, pessimistic, observed)
    predicted = np.array([coefficients.combine(o, p) for o, p in zip(opt, pess)])

    valid = obs > 0
    if not np.any(valid):
        raise ValueError("No site with a positive observed value")
    errors = np.abs(predicted[valid] - obs[valid]) / obs[valid] * 100

    p50, p90, p95 = np.percentile(errors, [50, 90, 95])
    return ErrorSummary(
        p50=float(p50),
        p90=float(p90),
        p95=float(p95),
        mean=float(errors.mean()),
        n_sites=int(valid.sum()),
    )


def load_golden_expectations(path: str | Path, metric_name: str) -> dict[str, float]:
    """
    Read measured values of one metric from a golden expectations file.

    The file has the shape {"sites": [{"url": ..., "wpt3g": {...}}]}.

    Returns:
        url -> measured value (ms); sites without the metric are skipped
    """
    key = GOLDEN_METRIC_KEYS.get(metric_name, metric_name)
    with open(path) as f:
        golden = json.load(f)

    expectations = {}
    for site in golden.get("sites", []):
        value = site.get("wpt3g", {}).get(key)
        if value is not None:
            expectations[site["url"]] = float(value)
    return expectations
