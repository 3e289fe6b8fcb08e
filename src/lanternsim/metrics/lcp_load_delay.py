"""
LCP load delay: when the request for the LCP image starts.

Everything that started before the LCP image request is a candidate cause
of its delay. The optimistic bound assumes only important network requests
matter (no CPU work, nothing Low/VeryLow); the pessimistic bound keeps all
of it. The estimate is the simulated start of the image request.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from lanternsim.core.errors import MissingTargetNodeError, NoLcpError, NotAnImageError
from lanternsim.core.graph import NodeType
from lanternsim.metrics.base import LanternMetric

if TYPE_CHECKING:
    from lanternsim.core.graph import DependencyGraph, NetworkNode
    from lanternsim.metrics.navigation import NavigationContext


class LCPLoadDelay(LanternMetric):
    name = "lcp-load-delay"

    def get_lcp_request_node(self, graph: DependencyGraph, navigation: NavigationContext) -> NetworkNode:
        """
        Network node that fetched the LCP image.

        With several requests for the same URL the last one in dependency
        order wins.
        """
        if navigation.largest_contentful_paint is None:
            raise NoLcpError("No largest contentful paint in trace", metric_name=self.name)
        url = navigation.lcp_image_url
        if not url:
            raise NotAnImageError("LCP element was not an image", metric_name=self.name)

        lcp_node = None
        for node in graph.traverse():
            if node.type is NodeType.NETWORK and node.url == url:
                lcp_node = node
        if lcp_node is None:
            raise MissingTargetNodeError("Could not find LCP request node", metric_name=self.name, url=url)
        return lcp_node

    def get_optimistic_graph(self, graph, navigation):
        lcp_node = self.get_lcp_request_node(graph, navigation)

        def keep(node):
            if node.id in (graph.root_id, lcp_node.id):
                return True
            if node.start_time > lcp_node.start_time:
                return False
            # No CPU work blocks the LCP request in the optimistic graph
            if node.type is NodeType.CPU:
                return False
            return node.priority not in ("Low", "VeryLow")

        return graph.clone_with_relationships(keep)

    def get_pessimistic_graph(self, graph, navigation):
        lcp_node = self.get_lcp_request_node(graph, navigation)
        return graph.clone_with_relationships(
            lambda node: node.id == graph.root_id or node.start_time <= lcp_node.start_time,
            target_id=lcp_node.id,
        )

    def get_estimate_from_simulation(self, simulation, *, graph, navigation, optimistic, extras):
        lcp_node = self.get_lcp_request_node(graph, navigation)
        return simulation.timing_for(lcp_node.id).start_time
