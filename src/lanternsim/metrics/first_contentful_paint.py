"""
First Contentful Paint.

Both bounds simulate the "first paint based" graph: the work that had
finished by the observed paint and could have blocked it.

Network nodes are kept when they finished before the paint and look render
blocking. CPU nodes are kept when they evaluated a script that could have
blocked rendering, or when they are the first layout, paint or HTML parse
(some of those always precede the first paint).

The optimistic bound does not count script-initiated requests as render
blocking; the pessimistic bound also keeps every layout task.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from lanternsim.core.errors import NoFcpError
from lanternsim.core.graph import NodeType
from lanternsim.metrics.base import LanternMetric

if TYPE_CHECKING:
    from lanternsim.core.graph import AnyNode, CpuNode, DependencyGraph, NetworkNode
    from lanternsim.metrics.navigation import NavigationContext


@dataclass
class RenderBlockingData:
    definitely_not_render_blocking_script_urls: set[str]
    render_blocking_cpu_node_ids: set[str]


def get_render_blocking_node_data(
    graph: DependencyGraph,
    cutoff: float,
    treat_node_as_render_blocking: Callable[[NetworkNode], bool],
    additional_cpu_nodes_to_treat_as_render_blocking: Callable[[CpuNode], bool] | None = None,
) -> RenderBlockingData:
    """Work out which scripts and CPU tasks could have blocked a paint at cutoff."""
    cpu_nodes: list[CpuNode] = []
    script_url_to_node: dict[str, CpuNode] = {}  # Earliest evaluation of each script

    for node in graph.traverse():
        if node.type is not NodeType.CPU:
            continue
        if node.start_time <= cutoff:
            cpu_nodes.append(node)
        for url in node.evaluated_script_urls:
            existing = script_url_to_node.get(url)
            if existing is None or node.start_time < existing.start_time:
                script_url_to_node[url] = node
    cpu_nodes.sort(key=lambda node: node.start_time)

    # Possibly render blocking: finished loading before the paint
    possibly_render_blocking_urls = {
        node.url
        for node in graph.network_nodes()
        if node.resource_type == "Script"
        and node.end_time <= cutoff
        and treat_node_as_render_blocking(node)
    }

    definitely_not: set[str] = set()
    blocking_cpu_ids: set[str] = set()
    for url, node in script_url_to_node.items():
        # Evaluation started after the paint
        if node.start_time >= cutoff:
            definitely_not.add(url)
            continue
        if url in possibly_render_blocking_urls:
            blocking_cpu_ids.add(node.id)

    for predicate in (
        lambda n: n.did_perform_layout,
        lambda n: n.did_paint,
        lambda n: n.did_parse_html,
    ):
        first = next((n for n in cpu_nodes if predicate(n)), None)
        if first is not None:
            blocking_cpu_ids.add(first.id)

    if additional_cpu_nodes_to_treat_as_render_blocking is not None:
        blocking_cpu_ids.update(
            n.id for n in cpu_nodes if additional_cpu_nodes_to_treat_as_render_blocking(n)
        )

    return RenderBlockingData(definitely_not, blocking_cpu_ids)


def get_first_paint_based_graph(
    graph: DependencyGraph,
    cutoff: float,
    treat_node_as_render_blocking: Callable[[NetworkNode], bool],
    additional_cpu_nodes_to_treat_as_render_blocking: Callable[[CpuNode], bool] | None = None,
) -> DependencyGraph:
    """Clone of graph restricted to the work that could block a paint at cutoff."""
    data = get_render_blocking_node_data(
        graph, cutoff, treat_node_as_render_blocking, additional_cpu_nodes_to_treat_as_render_blocking
    )

    def keep(node: AnyNode) -> bool:
        if node.id == graph.root_id:
            return True
        if node.type is NodeType.CPU:
            return node.id in data.render_blocking_cpu_node_ids
        ended_after_paint = node.end_time > cutoff or node.start_time > cutoff
        if ended_after_paint and not node.is_main_document:
            return False
        if node.url in data.definitely_not_render_blocking_script_urls:
            return False
        return treat_node_as_render_blocking(node)

    return graph.clone_with_relationships(keep)


class FirstContentfulPaint(LanternMetric):
    name = "first-contentful-paint"

    @staticmethod
    def _cutoff(navigation: NavigationContext) -> float:
        if navigation.first_contentful_paint is None:
            raise NoFcpError("No first contentful paint in trace", metric_name="first-contentful-paint")
        return navigation.first_contentful_paint

    def get_optimistic_graph(self, graph, navigation):
        # Script-initiated requests look important but do not block rendering
        return get_first_paint_based_graph(
            graph,
            self._cutoff(navigation),
            lambda node: node.has_render_blocking_priority() and node.initiator_type != "script",
        )

    def get_pessimistic_graph(self, graph, navigation):
        return get_first_paint_based_graph(
            graph,
            self._cutoff(navigation),
            lambda node: node.has_render_blocking_priority(),
            additional_cpu_nodes_to_treat_as_render_blocking=lambda node: node.did_perform_layout,
        )
