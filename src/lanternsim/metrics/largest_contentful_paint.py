"""
Largest Contentful Paint.

Same first-paint based graph as FCP, cut at the observed LCP. Low priority
images are assumed to be offscreen, so the optimistic bound drops them and
neither bound waits for them. LCP can never come before FCP.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from lanternsim.core.errors import NoLcpError
from lanternsim.core.graph import NodeType
from lanternsim.metrics.base import LanternMetric
from lanternsim.metrics.first_contentful_paint import FirstContentfulPaint, get_first_paint_based_graph

if TYPE_CHECKING:
    from lanternsim.core.graph import AnyNode


def is_not_low_priority_image_node(node: AnyNode) -> bool:
    if node.type is not NodeType.NETWORK:
        return True
    is_image = node.resource_type == "Image"
    is_low_priority = node.priority in ("Low", "VeryLow")
    return not is_image or not is_low_priority


class LargestContentfulPaint(LanternMetric):
    name = "largest-contentful-paint"
    required_metrics = (FirstContentfulPaint.name,)

    @staticmethod
    def _cutoff(navigation) -> float:
        if navigation.largest_contentful_paint is None:
            raise NoLcpError("No largest contentful paint in trace", metric_name="largest-contentful-paint")
        return navigation.largest_contentful_paint

    def get_optimistic_graph(self, graph, navigation):
        return get_first_paint_based_graph(graph, self._cutoff(navigation), is_not_low_priority_image_node)

    def get_pessimistic_graph(self, graph, navigation):
        return get_first_paint_based_graph(
            graph,
            self._cutoff(navigation),
            lambda node: True,
            additional_cpu_nodes_to_treat_as_render_blocking=lambda node: node.did_perform_layout,
        )

    def get_estimate_from_simulation(self, simulation, *, graph, navigation, optimistic, extras):
        end_times = [
            timing.end_time
            for node_id, timing in simulation.node_timings.items()
            if is_not_low_priority_image_node(graph.get(node_id))
        ]
        return max(end_times, default=0.0)

    def resolve_extras(self, graph, navigation, simulator, coefficients, extras):
        extras = dict(extras or {})
        if FirstContentfulPaint.name not in extras:
            extras[FirstContentfulPaint.name] = FirstContentfulPaint().compute(
                graph, navigation, simulator, coefficients
            )
        return extras

    def adjust_result(self, result, *, navigation, extras):
        fcp_result = extras[FirstContentfulPaint.name]
        timing = max(result.timing, fcp_result.timing)
        return dataclasses.replace(result, timing=timing, timestamp=navigation.time_origin + timing)
