"""
Time to Interactive.

The page is interactive once the largest content is painted and the main
thread has finished its last long task. The optimistic bound keeps only
the work likely to produce long tasks (scripts, important requests, CPU
tasks over 20 ms); the pessimistic bound is the whole page.
"""

from __future__ import annotations

from lanternsim.core.graph import NodeType
from lanternsim.metrics.base import LanternMetric
from lanternsim.metrics.largest_contentful_paint import LargestContentfulPaint

MINIMUM_CPU_TASK_DURATION_MS = 20.0  # Tasks kept in the optimistic graph
LONG_TASK_DURATION_MS = 50.0


def get_last_long_task_end_time(simulation, graph, duration: float = LONG_TASK_DURATION_MS) -> float:
    """End of the last simulated CPU task longer than duration (0 if none)."""
    end_times = [
        timing.end_time
        for node_id, timing in simulation.node_timings.items()
        if graph.get(node_id).type is NodeType.CPU and timing.duration > duration
    ]
    return max(end_times, default=0.0)


class Interactive(LanternMetric):
    name = "interactive"
    required_metrics = (LargestContentfulPaint.name,)

    def get_optimistic_graph(self, graph, navigation):
        def keep(node):
            if node.id == graph.root_id:
                return True
            # Everything that might be a long task
            if node.type is NodeType.CPU:
                return node.duration > MINIMUM_CPU_TASK_DURATION_MS
            is_image = node.resource_type == "Image"
            is_script = node.resource_type == "Script"
            return not is_image and (is_script or node.priority in ("High", "VeryHigh"))

        return graph.clone_with_relationships(keep)

    def get_pessimistic_graph(self, graph, navigation):
        return graph.copy()

    def get_estimate_from_simulation(self, simulation, *, graph, navigation, optimistic, extras):
        lcp_result = extras[LargestContentfulPaint.name]
        bound = lcp_result.optimistic_estimate if optimistic else lcp_result.pessimistic_estimate
        return max(bound.time_in_ms, get_last_long_task_end_time(simulation, graph))

    def resolve_extras(self, graph, navigation, simulator, coefficients, extras):
        extras = dict(extras or {})
        if LargestContentfulPaint.name not in extras:
            extras[LargestContentfulPaint.name] = LargestContentfulPaint().compute(
                graph, navigation, simulator, coefficients
            )
        return extras
