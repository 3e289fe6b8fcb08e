"""
Page graph construction from observed requests and main-thread tasks.

Linking rules:
- Redirect hop N+1 depends on hop N
- A request depends on its initiator request (matched by URL), else the root
- A CPU task depends on the requests whose URLs it is attributed to and
  that finished before it started, else the root
- A request depends on the CPU task that issued it

Edges only run from earlier-starting nodes to later ones, so the result
is acyclic for any consistent trace. A final check still rejects cycles.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from lanternsim.core.cache import computed_artifact
from lanternsim.core.errors import GraphConstructionError
from lanternsim.core.graph import CpuNode, DependencyGraph, NetworkNode
from lanternsim.core.records import CpuTask, NetworkRequest

logger = logging.getLogger(__name__)


# Tasks shorter than this are dropped unless they did layout, paint or parse
DEFAULT_MIN_TASK_DURATION_MS = 10.0


def find_root_request(requests: Sequence[NetworkRequest]) -> NetworkRequest:
    """
    First hop of the main document's redirect chain.

    The main document is the request flagged is_main_document, else the
    first Document request, else the earliest request.
    """
    if not requests:
        raise GraphConstructionError("Cannot build a graph without network requests")

    by_id = {request.request_id: request for request in requests}
    ordered = sorted(requests, key=lambda r: r.start_time)
    main = next((r for r in ordered if r.is_main_document), None)
    if main is None:
        main = next((r for r in ordered if r.resource_type == "Document"), ordered[0])

    seen = {main.request_id}
    while main.redirect_source_id in by_id:
        main = by_id[main.redirect_source_id]
        if main.request_id in seen:
            raise GraphConstructionError("Redirect loop in main document chain", node_id=main.request_id)
        seen.add(main.request_id)
    return main


def _find_main_document(root: NetworkRequest, by_id: dict[str, NetworkRequest]) -> NetworkRequest:
    """Follow redirects forward from the root to the final hop."""
    main = root
    seen = {main.request_id}
    while main.redirect_destination_id in by_id and main.redirect_destination_id not in seen:
        main = by_id[main.redirect_destination_id]
        seen.add(main.request_id)
    return main


def _resolve_initiator(
    request: NetworkRequest,
    nodes_by_url: dict[str, list[NetworkNode]],
) -> NetworkNode | None:
    url = request.initiator.url
    if not url:
        return None
    candidates = [
        node for node in nodes_by_url.get(url, [])
        if node.id != request.request_id and node.start_time <= request.start_time
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda node: node.start_time)


def _is_significant(task: CpuTask, min_task_duration_ms: float) -> bool:
    return (
        task.duration >= min_task_duration_ms
        or task.did_perform_layout
        or task.did_paint
        or task.did_parse_html
    )


def build_page_graph(
    requests: Iterable[NetworkRequest],
    tasks: Iterable[CpuTask] = (),
    *,
    min_task_duration_ms: float = DEFAULT_MIN_TASK_DURATION_MS,
) -> DependencyGraph:
    """
    Build the dependency graph of a page load.

    Args:
        requests: Observed network requests
        tasks: Observed top-level main-thread tasks
        min_task_duration_ms: Threshold below which tasks are ignored

    Returns:
        DependencyGraph rooted at the first hop of the main document

    Raises:
        GraphConstructionError: no requests, duplicate ids, or a cycle
    """
    requests = list(requests)
    tasks = list(tasks)
    root_request = find_root_request(requests)

    by_id: dict[str, NetworkRequest] = {}
    for request in requests:
        if request.request_id in by_id:
            raise GraphConstructionError(
                f"Duplicate request id {request.request_id!r}", node_id=request.request_id
            )
        by_id[request.request_id] = request
    main_document = _find_main_document(root_request, by_id)

    graph = DependencyGraph()
    root = graph.add_node(NetworkNode(root_request, is_main_document=root_request is main_document))

    # Remaining requests in observed start order (stable for ties)
    network_nodes = [root]
    for request in sorted(requests, key=lambda r: r.start_time):
        if request.request_id == root.id:
            continue
        node = NetworkNode(request, is_main_document=True if request is main_document else None)
        network_nodes.append(graph.add_node(node))

    nodes_by_url: dict[str, list[NetworkNode]] = {}
    for node in network_nodes:
        nodes_by_url.setdefault(node.url, []).append(node)

    for node in network_nodes[1:]:
        request = node.request
        if request.redirect_source_id in by_id and request.redirect_source_id != node.id:
            graph.add_dependency(node.id, request.redirect_source_id)
            continue
        initiator = _resolve_initiator(request, nodes_by_url)
        graph.add_dependency(node.id, initiator.id if initiator is not None else root.id)

    # ───────────────────────────────────────────────────────────────
    # CPU tasks
    # ───────────────────────────────────────────────────────────────
    significant = [task for task in tasks if _is_significant(task, min_task_duration_ms)]
    significant.sort(key=lambda task: task.start_time)

    for task in significant:
        if task.task_id in graph:
            raise GraphConstructionError(f"Duplicate task id {task.task_id!r}", node_id=task.task_id)
        cpu_node = graph.add_node(CpuNode(task))

        for url in task.attributable_urls:
            finished_before = [
                node for node in nodes_by_url.get(url, []) if node.end_time <= task.start_time
            ]
            if finished_before:
                latest = max(finished_before, key=lambda node: node.end_time)
                graph.add_dependency(cpu_node.id, latest.id)
        if not cpu_node.dependency_ids:
            graph.add_dependency(cpu_node.id, root.id)

        initiated = set(task.initiated_request_ids)
        for node in network_nodes[1:]:
            if node.start_time < task.start_time:
                continue
            request = node.request
            issued_by_task = request.request_id in initiated
            issued_by_script = (
                request.initiator.type == "script"
                and request.initiator.url in task.attributable_urls
                and node.start_time <= task.end_time
            )
            if issued_by_task or issued_by_script:
                graph.add_dependency(node.id, cpu_node.id)

    cycle = graph.find_cycle()
    if cycle:
        raise GraphConstructionError(f"Dependency cycle: {' -> '.join(cycle)}", node_id=cycle[0])

    logger.debug(
        "Built page graph: %d network nodes, %d cpu nodes (%d tasks dropped)",
        len(network_nodes), len(significant), len(tasks) - len(significant),
    )
    return graph


@computed_artifact("page-dependency-graph")
def page_graph(requests: Sequence[NetworkRequest], tasks: Sequence[CpuTask] = ()) -> DependencyGraph:
    """Memoizable entry point; callers must treat the shared graph as read-only."""
    return build_page_graph(requests, tasks)
