"""
Timeline analysis of a simulation result.

Questions a simulated waterfall answers:
- How many requests (or tasks) were in flight at once?
- Which chain of dependencies decided when a node finished?
- Where did the time go (network vs main thread)?

IMPORTANT: Read-only. Nothing here feeds back into the simulator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from lanternsim.core.errors import GraphError
from lanternsim.core.graph import NodeType

if TYPE_CHECKING:
    from lanternsim.core.graph import DependencyGraph
    from lanternsim.core.simulator import SimulationResult


@dataclass
class ConcurrencyProfile:
    """Number of in-progress nodes after each start/end event."""

    times: np.ndarray   # Event times (ms), sorted
    counts: np.ndarray  # In-progress count right after each event
    max_concurrency: int


def concurrency_profile(
    result: SimulationResult,
    graph: DependencyGraph,
    node_type: NodeType | None = None,
    origin: str | None = None,
) -> ConcurrencyProfile:
    """
    Sweep the simulated intervals and count overlap.

    A node ending at t and another starting at t do not overlap.
    Zero-length intervals never occupy a resource and are ignored.

    Args:
        result: Simulation result
        graph: Graph that was simulated
        node_type: Only count this node type
        origin: Only count network nodes of this origin
    """
    starts, ends = [], []
    for node_id, timing in result.node_timings.items():
        node = graph.get(node_id)
        if node_type is not None and node.type is not node_type:
            continue
        if origin is not None and (node.type is not NodeType.NETWORK or node.origin != origin):
            continue
        if timing.duration <= 0:
            continue
        starts.append(timing.start_time)
        ends.append(timing.end_time)

    if not starts:
        return ConcurrencyProfile(np.zeros(0), np.zeros(0, dtype=np.int64), 0)

    times = np.concatenate([starts, ends])
    deltas = np.concatenate([np.ones(len(starts), dtype=np.int64), -np.ones(len(ends), dtype=np.int64)])
    # Sort by time, ends (-1) before starts (+1) at equal times
    order = np.lexsort((deltas, times))
    counts = np.cumsum(deltas[order])
    return ConcurrencyProfile(times[order], counts, int(counts.max()))


def critical_path(
    graph: DependencyGraph,
    result: SimulationResult,
    target_id: str | None = None,
) -> list[str]:
    """
    Chain of nodes that determined when target finished.

    Walks back from the target, each time to the dependency that finished
    last. Defaults to the node that finished last overall.

    Returns:
        Node ids from the start of the chain to the target
    """
    if not result.node_timings:
        return []
    if target_id is None:
        target_id = max(result.node_timings, key=lambda node_id: result.node_timings[node_id].end_time)
    if target_id not in result.node_timings:
        raise GraphError(f"Node {target_id!r} was not simulated", node_id=target_id)

    path = [target_id]
    node = graph.get(target_id)
    while node.dependency_ids:
        blocking_id = max(node.dependency_ids, key=lambda dep_id: result.node_timings[dep_id].end_time)
        path.append(blocking_id)
        node = graph.get(blocking_id)
    path.reverse()
    return path


def summarize_timeline(graph: DependencyGraph, result: SimulationResult) -> dict:
    """Aggregate numbers for a simulation (for reports and demos)."""
    network_durations = []
    cpu_durations = []
    for node_id, timing in result.node_timings.items():
        if graph.get(node_id).type is NodeType.CPU:
            cpu_durations.append(timing.duration)
        else:
            network_durations.append(timing.duration)

    return {
        "label": result.label,
        "total_time_ms": result.time_in_ms,
        "network_nodes": len(network_durations),
        "cpu_nodes": len(cpu_durations),
        "network_time_ms": float(np.sum(network_durations)) if network_durations else 0.0,
        "cpu_time_ms": float(np.sum(cpu_durations)) if cpu_durations else 0.0,
        "max_network_concurrency": concurrency_profile(result, graph, NodeType.NETWORK).max_concurrency,
        "max_cpu_concurrency": concurrency_profile(result, graph, NodeType.CPU).max_concurrency,
        "critical_path_length": len(critical_path(graph, result)),
    }
