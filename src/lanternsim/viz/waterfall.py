"""
Waterfall visualization for simulated page loads.

One horizontal bar per node, from simulated start to end, colored by
request priority (network) or main-thread (CPU). Optimistic and pessimistic
simulations of a metric can be drawn side by side.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from matplotlib.figure import Figure
from matplotlib.patches import Patch

from lanternsim.core.graph import NodeType

if TYPE_CHECKING:
    from lanternsim.core.graph import DependencyGraph
    from lanternsim.core.simulator import SimulationResult
    from lanternsim.metrics.base import MetricResult


PRIORITY_COLORS = {
    "VeryHigh": "#c0392b",
    "High": "#e67e22",
    "Medium": "#f1c40f",
    "Low": "#27ae60",
    "VeryLow": "#2980b9",
}
CPU_COLOR = "#8e44ad"


def _label(node) -> str:
    if node.type is NodeType.CPU:
        return f"cpu:{node.id}"
    url = node.url
    return url if len(url) <= 40 else "…" + url[-39:]


def plot_waterfall(
    graph: "DependencyGraph",
    result: "SimulationResult",
    title: str | None = None,
    ax: Axes | None = None,
    figsize: tuple[float, float] = (10, 6),
    show_labels: bool = True,
    marker_time: float | None = None,
) -> tuple[Figure, Axes]:
    """
    Plot a simulated waterfall.

    Args:
        graph: Graph that was simulated
        result: Simulation result
        title: Plot title (default: result label)
        ax: Existing axes (creates new if None)
        figsize: Figure size when creating a figure
        show_labels: Label bars with URL / task id
        marker_time: Draw a vertical line at this time (e.g. a metric estimate)

    Returns:
        (fig, ax) tuple
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    node_ids = list(result.node_timings)
    for row, node_id in enumerate(node_ids):
        node = graph.get(node_id)
        timing = result.node_timings[node_id]
        color = CPU_COLOR if node.type is NodeType.CPU else PRIORITY_COLORS[node.priority]
        ax.barh(row, max(timing.duration, 0.5), left=timing.start_time, color=color, height=0.7)

    if show_labels:
        ax.set_yticks(range(len(node_ids)))
        ax.set_yticklabels([_label(graph.get(node_id)) for node_id in node_ids], fontsize=7)
    else:
        ax.set_yticks([])

    if marker_time is not None:
        ax.axvline(marker_time, color="black", linestyle="--", linewidth=1.0)

    ax.invert_yaxis()
    ax.set_xlabel("Simulated time (ms)")
    ax.set_title(title or result.label or "Simulated waterfall")
    handles = [Patch(color=c, label=p) for p, c in PRIORITY_COLORS.items()]
    handles.append(Patch(color=CPU_COLOR, label="CPU"))
    ax.legend(handles=handles, loc="lower right", fontsize=7)

    return fig, ax


def plot_estimate_comparison(
    metric_result: "MetricResult",
    figsize: tuple[float, float] = (14, 6),
) -> tuple[Figure, tuple[Axes, Axes]]:
    """
    Optimistic and pessimistic waterfalls of a metric side by side.

    Each panel marks its bound's estimate; the blended timing is in the
    figure title.
    """
    fig, (ax_opt, ax_pess) = plt.subplots(1, 2, figsize=figsize, sharex=True)

    optimistic = metric_result.optimistic_estimate
    pessimistic = metric_result.pessimistic_estimate
    plot_waterfall(
        metric_result.optimistic_graph, optimistic.simulation, ax=ax_opt,
        title=f"Optimistic: {optimistic.time_in_ms:.0f} ms", marker_time=optimistic.time_in_ms,
    )
    plot_waterfall(
        metric_result.pessimistic_graph, pessimistic.simulation, ax=ax_pess,
        title=f"Pessimistic: {pessimistic.time_in_ms:.0f} ms", marker_time=pessimistic.time_in_ms,
    )
    fig.suptitle(f"{metric_result.metric_name}: {metric_result.timing:.0f} ms")
    fig.tight_layout()
    return fig, (ax_opt, ax_pess)


def save_figure(fig: Figure, path: str | Path, dpi: int = 150, **kwargs) -> None:
    """Save figure to file."""
    fig.savefig(path, dpi=dpi, bbox_inches="tight", **kwargs)
