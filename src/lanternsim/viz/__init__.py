"""
Visualization utilities.

- Simulated waterfalls
- Optimistic vs pessimistic comparison for a metric
"""

from lanternsim.viz.waterfall import (
    plot_estimate_comparison,
    plot_waterfall,
    save_figure,
)

__all__ = [
    "plot_estimate_comparison",
    "plot_waterfall",
    "save_figure",
]
