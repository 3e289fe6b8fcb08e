"""
Compare a simulated load with the observed one.

Under "provided" throttling (the observed conditions, CPU x1) the
simulation should reproduce the observed waterfall. How closely it does is
a check of the graph and the network model:
- observed: end times from the trace, relative to the root request start
- simulated: end times from the simulator

If they correlate well, the model explains the observed load.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from lanternsim.core.graph import DependencyGraph
    from lanternsim.core.simulator import SimulationResult


@dataclass
class ComparisonResult:
    """Results of comparing simulated vs observed end times."""

    node_ids: list[str]
    observed: np.ndarray     # Observed end times (ms from root start)
    simulated: np.ndarray    # Simulated end times (ms from simulation start)
    correlation: float
    rmse: float
    max_error: float

    # Normalized versions for visual comparison
    observed_normalized: np.ndarray
    simulated_normalized: np.ndarray


def normalize_series(values: np.ndarray) -> np.ndarray:
    """Normalize values to [0, 1] range for comparison."""
    if values.size == 0:
        return values.astype(np.float64)
    vmin, vmax = values.min(), values.max()
    if vmax - vmin < 1e-10:
        return np.zeros_like(values, dtype=np.float64)
    return (values - vmin) / (vmax - vmin)


def compare_simulated_vs_observed(graph: DependencyGraph, result: SimulationResult) -> ComparisonResult:
    """
    Compare simulated node end times with the observed ones.

    Args:
        graph: Graph that was simulated
        result: Its simulation result

    Returns:
        ComparisonResult; correlation is nan with fewer than two nodes or
        when either series is constant
    """
    origin = graph.root.start_time
    node_ids = list(result.node_timings)
    observed = np.array([graph.get(node_id).end_time - origin for node_id in node_ids], dtype=np.float64)
    simulated = np.array([result.node_timings[node_id].end_time for node_id in node_ids], dtype=np.float64)

    observed_norm = normalize_series(observed)
    simulated_norm = normalize_series(simulated)

    if len(node_ids) < 2 or np.ptp(observed) < 1e-10 or np.ptp(simulated) < 1e-10:
        correlation = float("nan")
    else:
        correlation = float(np.corrcoef(observed_norm, simulated_norm)[0, 1])

    errors = np.abs(simulated - observed)
    rmse = float(np.sqrt(np.mean(errors ** 2))) if errors.size else 0.0
    max_error = float(errors.max()) if errors.size else 0.0

    return ComparisonResult(
        node_ids=node_ids,
        observed=observed,
        simulated=simulated,
        correlation=correlation,
        rmse=rmse,
        max_error=max_error,
        observed_normalized=observed_norm,
        simulated_normalized=simulated_norm,
    )
