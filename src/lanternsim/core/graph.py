"""
Dependency graph: the page load as a DAG of network and CPU work.

The graph stores ONLY structure:
- Nodes keyed by id (an arena), each wrapping an immutable record
- Ordered dependency/dependent id lists per node
- A designated root (the main document request)

Timing estimates live in the simulator; nothing here is mutated by a run.
Sub-graphs for the metrics are produced by clone_with_relationships, which
copies the structure and shares the record payloads.
"""

from __future__ import annotations

import heapq
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Callable, Iterator, Union

from lanternsim.core.errors import GraphError
from lanternsim.core.records import CpuTask, NetworkRequest


class NodeType(Enum):
    NETWORK = "network"
    CPU = "cpu"


class Node(ABC):
    """Shared structure of both node variants."""

    type: NodeType

    def __init__(self, node_id: str):
        self.id = node_id
        self.dependency_ids: list[str] = []
        self.dependent_ids: list[str] = []

    @property
    @abstractmethod
    def start_time(self) -> float:
        pass

    @property
    @abstractmethod
    def end_time(self) -> float:
        pass

    @abstractmethod
    def clone_without_relationships(self) -> Node:
        """Copy of this node with no edges, sharing the record."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"


class NetworkNode(Node):
    """A network request in the graph."""

    type = NodeType.NETWORK

    def __init__(self, request: NetworkRequest, is_main_document: bool | None = None):
        super().__init__(request.request_id)
        self.request = request
        self._is_main_document = is_main_document

    @property
    def start_time(self) -> float:
        return self.request.start_time

    @property
    def end_time(self) -> float:
        return self.request.end_time

    @property
    def url(self) -> str:
        return self.request.url

    @property
    def priority(self) -> str:
        return self.request.priority

    @property
    def origin(self) -> str:
        return self.request.origin

    @property
    def resource_type(self) -> str:
        return self.request.resource_type

    @property
    def initiator_type(self) -> str:
        return self.request.initiator.type

    @property
    def is_main_document(self) -> bool:
        if self._is_main_document is not None:
            return self._is_main_document
        return self.request.is_main_document

    @property
    def from_disk_cache(self) -> bool:
        return self.request.from_disk_cache

    @property
    def is_non_network_protocol(self) -> bool:
        return self.request.is_non_network_protocol

    @property
    def is_connectionless(self) -> bool:
        """Served without a connection (disk cache, data:/blob: URLs)."""
        return self.from_disk_cache or self.is_non_network_protocol

    def has_render_blocking_priority(self) -> bool:
        priority = self.request.priority
        is_script = self.request.resource_type == "Script"
        is_document = self.request.resource_type == "Document"
        return priority == "VeryHigh" or (priority == "High" and (is_script or is_document))

    def clone_without_relationships(self) -> NetworkNode:
        return NetworkNode(self.request, is_main_document=self._is_main_document)


class CpuNode(Node):
    """A main-thread task in the graph."""

    type = NodeType.CPU

    def __init__(self, task: CpuTask):
        super().__init__(task.task_id)
        self.task = task

    @property
    def start_time(self) -> float:
        return self.task.start_time

    @property
    def end_time(self) -> float:
        return self.task.end_time

    @property
    def duration(self) -> float:
        return self.task.duration

    @property
    def did_perform_layout(self) -> bool:
        return self.task.did_perform_layout

    @property
    def did_paint(self) -> bool:
        return self.task.did_paint

    @property
    def did_parse_html(self) -> bool:
        return self.task.did_parse_html

    @property
    def evaluated_script_urls(self) -> tuple[str, ...]:
        if self.task.group != "script_evaluation":
            return ()
        return self.task.attributable_urls

    def clone_without_relationships(self) -> CpuNode:
        return CpuNode(self.task)


AnyNode = Union[NetworkNode, CpuNode]


class DependencyGraph:
    """
    Arena of nodes with id-referenced dependency edges.

    An edge (node -> dependency) means node cannot start until dependency
    has completed. The first node added becomes the root unless root_id
    is given explicitly.
    """

    def __init__(self, root_id: str | None = None):
        self.root_id = root_id
        self._nodes: dict[str, AnyNode] = {}

    # ═══════════════════════════════════════════════════════════════
    # CONSTRUCTION
    # ═══════════════════════════════════════════════════════════════

    def add_node(self, node: AnyNode) -> AnyNode:
        if node.id in self._nodes:
            raise GraphError(f"Duplicate node id {node.id!r}", node_id=node.id)
        self._nodes[node.id] = node
        if self.root_id is None:
            self.root_id = node.id
        return node

    def add_dependency(self, node_id: str, dependency_id: str):
        """Record that node_id depends on dependency_id (idempotent)."""
        if node_id == dependency_id:
            raise GraphError(f"Node {node_id!r} cannot depend on itself", node_id=node_id)
        node = self.get(node_id)
        dependency = self.get(dependency_id)
        if dependency_id in node.dependency_ids:
            return
        node.dependency_ids.append(dependency_id)
        dependency.dependent_ids.append(node_id)

    def remove_dependency(self, node_id: str, dependency_id: str):
        node = self.get(node_id)
        dependency = self.get(dependency_id)
        if dependency_id in node.dependency_ids:
            node.dependency_ids.remove(dependency_id)
            dependency.dependent_ids.remove(node_id)

    # ═══════════════════════════════════════════════════════════════
    # LOOKUP
    # ═══════════════════════════════════════════════════════════════

    def get(self, node_id: str) -> AnyNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise GraphError(f"Unknown node id {node_id!r}", node_id=node_id) from None

    @property
    def root(self) -> AnyNode:
        if self.root_id is None:
            raise GraphError("Graph has no root")
        return self.get(self.root_id)

    def nodes(self) -> list[AnyNode]:
        """All nodes in insertion order."""
        return list(self._nodes.values())

    def roots(self) -> list[AnyNode]:
        """Nodes with no dependencies."""
        return [node for node in self._nodes.values() if not node.dependency_ids]

    def network_nodes(self) -> list[NetworkNode]:
        return [node for node in self._nodes.values() if node.type is NodeType.NETWORK]

    def cpu_nodes(self) -> list[CpuNode]:
        return [node for node in self._nodes.values() if node.type is NodeType.CPU]

    def find_network_node(self, predicate: Callable[[NetworkNode], bool]) -> NetworkNode | None:
        for node in self.network_nodes():
            if predicate(node):
                return node
        return None

    def get_dependencies(self, node_id: str) -> list[AnyNode]:
        return [self._nodes[dep_id] for dep_id in self.get(node_id).dependency_ids]

    def get_dependents(self, node_id: str) -> list[AnyNode]:
        return [self._nodes[dep_id] for dep_id in self.get(node_id).dependent_ids]

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[AnyNode]:
        return iter(self.traverse())

    # ═══════════════════════════════════════════════════════════════
    # TRAVERSAL
    # ═══════════════════════════════════════════════════════════════

    def traverse(self, visitor: Callable[[AnyNode], None] | None = None) -> list[AnyNode]:
        """
        Visit every node once, dependencies before dependents.

        Ties between nodes that are ready at the same time are broken by
        insertion order, so the result is deterministic.

        Raises:
            GraphError: if the graph has a cycle
        """
        index = {node_id: i for i, node_id in enumerate(self._nodes)}
        remaining = {node_id: len(node.dependency_ids) for node_id, node in self._nodes.items()}
        heap = [index[node_id] for node_id, count in remaining.items() if count == 0]
        heapq.heapify(heap)
        ids = list(self._nodes)

        order: list[AnyNode] = []
        while heap:
            node = self._nodes[ids[heapq.heappop(heap)]]
            order.append(node)
            for dependent_id in node.dependent_ids:
                remaining[dependent_id] -= 1
                if remaining[dependent_id] == 0:
                    heapq.heappush(heap, index[dependent_id])

        if len(order) != len(self._nodes):
            stuck = next(node_id for node_id, count in remaining.items() if count > 0)
            raise GraphError(f"Dependency cycle involving {stuck!r}", node_id=stuck)

        if visitor is not None:
            for node in order:
                visitor(node)
        return order

    def find_cycle(self) -> list[str] | None:
        """Return the ids of one dependency cycle, or None for a DAG."""
        WHITE, GREY, BLACK = 0, 1, 2
        color = {node_id: WHITE for node_id in self._nodes}

        for start in self._nodes:
            if color[start] != WHITE:
                continue
            path: list[str] = [start]
            stack = [iter(self._nodes[start].dependent_ids)]
            color[start] = GREY
            while stack:
                next_id = next(stack[-1], None)
                if next_id is None:
                    color[path.pop()] = BLACK
                    stack.pop()
                elif color[next_id] == GREY:
                    return path[path.index(next_id):]
                elif color[next_id] == WHITE:
                    color[next_id] = GREY
                    path.append(next_id)
                    stack.append(iter(self._nodes[next_id].dependent_ids))
        return None

    def has_cycle(self) -> bool:
        return self.find_cycle() is not None

    def reachable_from(self, node_id: str) -> set[str]:
        """Ids of node_id and everything that (transitively) depends on it."""
        seen = {node_id}
        queue = deque([node_id])
        while queue:
            for dependent_id in self.get(queue.popleft()).dependent_ids:
                if dependent_id not in seen:
                    seen.add(dependent_id)
                    queue.append(dependent_id)
        return seen

    # ═══════════════════════════════════════════════════════════════
    # CLONING
    # ═══════════════════════════════════════════════════════════════

    def clone_with_relationships(
        self,
        predicate: Callable[[AnyNode], bool] | None = None,
        target_id: str | None = None,
    ) -> DependencyGraph:
        """
        Copy the graph keeping exactly the nodes that satisfy predicate.

        Edges touching a removed node are dropped, not rewired. A kept node
        whose dependencies were all removed becomes an additional root.

        Args:
            predicate: Node filter (None keeps everything)
            target_id: Node the caller needs; must be kept and reachable

        Raises:
            GraphError: if the root is excluded, or the target is excluded
                or unreachable from the root
        """
        keep = [node for node in self._nodes.values() if predicate is None or predicate(node)]
        kept_ids = {node.id for node in keep}

        if self.root_id not in kept_ids:
            raise GraphError("Clone predicate excluded the root node", node_id=self.root_id)

        clone = DependencyGraph(root_id=self.root_id)
        for node in keep:
            clone.add_node(node.clone_without_relationships())
        for node in keep:
            for dependency_id in node.dependency_ids:
                if dependency_id in kept_ids:
                    clone.add_dependency(node.id, dependency_id)

        if target_id is not None:
            if target_id not in kept_ids:
                raise GraphError(f"Clone predicate excluded target {target_id!r}", node_id=target_id)
            if target_id not in clone.reachable_from(clone.root_id):
                raise GraphError(f"Target {target_id!r} is unreachable from the root", node_id=target_id)

        return clone

    def copy(self) -> DependencyGraph:
        return self.clone_with_relationships()
