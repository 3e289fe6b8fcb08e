"""
Simulator: discrete-event replay of a dependency graph.

Each step:
1. Start every ready node that can get its resource
   - network: a pool connection (per-origin and global limits),
     highest priority first, FIFO within a priority
   - CPU: the single main-thread lane, FIFO
2. Split the bandwidth evenly across active downloads
3. Advance the clock to the soonest projected completion
4. Apply that much progress to every in-progress node, complete the
   finished ones, release their resources and promote their dependents

The clock only moves forward and each node passes through
PENDING -> READY -> IN_PROGRESS -> COMPLETE exactly once per run.

A Simulator holds only configuration; every simulate() call builds its own
private run state, so one simulator can serve many graphs (and threads).
"""

from __future__ import annotations

import bisect
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

from lanternsim.core.connection_pool import (
    DEFAULT_MAX_CONNECTIONS_PER_ORIGIN,
    DEFAULT_MAX_TOTAL_CONNECTIONS,
    ConnectionPool,
)
from lanternsim.core.dns_cache import DNSCache
from lanternsim.core.errors import GraphError, ResourceLimitConfigError, UnschedulableGraphError
from lanternsim.core.graph import NodeType
from lanternsim.core.tcp_connection import ConnectionTiming, TcpConnection

if TYPE_CHECKING:
    from lanternsim.core.graph import AnyNode, CpuNode, DependencyGraph, NetworkNode

logger = logging.getLogger(__name__)


DEFAULT_RTT = 150.0  # ms, mobile slow 4G
DEFAULT_THROUGHPUT = 1638.4 * 1024 / 8  # bytes/s, mobile slow 4G
DEFAULT_CPU_SLOWDOWN_MULTIPLIER = 4.0
DEFAULT_LAYOUT_TASK_MULTIPLIER = 0.5
DEFAULT_MAXIMUM_CPU_TASK_DURATION = 10000.0  # ms
DEFAULT_MAX_ITERATIONS = 100000

# Fixed cost model for requests that never touch a connection
DISK_CACHE_BASE_MS = 8.0
DISK_CACHE_MS_PER_MB = 20.0
NON_NETWORK_BASE_MS = 2.0
NON_NETWORK_MS_PER_MB = 10.0


class NodeState(Enum):
    PENDING = "pending"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass
class SimulatorConfig:
    """Network and CPU conditions for a simulation."""

    rtt: float = DEFAULT_RTT                                   # Base round trip time (ms)
    throughput: float = DEFAULT_THROUGHPUT                     # Shared bandwidth (bytes/s)
    max_connections_per_origin: int = DEFAULT_MAX_CONNECTIONS_PER_ORIGIN
    max_concurrent_requests: int = DEFAULT_MAX_TOTAL_CONNECTIONS
    cpu_slowdown_multiplier: float = DEFAULT_CPU_SLOWDOWN_MULTIPLIER
    layout_task_multiplier: float = DEFAULT_LAYOUT_TASK_MULTIPLIER  # On top of the CPU multiplier
    max_cpu_task_duration: float = DEFAULT_MAXIMUM_CPU_TASK_DURATION
    additional_rtt_by_origin: dict[str, float] = field(default_factory=dict)
    server_response_time_by_origin: dict[str, float] = field(default_factory=dict)
    max_iterations: int = DEFAULT_MAX_ITERATIONS             # Guard against non-terminating runs

    def __post_init__(self):
        for name in ("rtt", "cpu_slowdown_multiplier", "layout_task_multiplier", "max_cpu_task_duration"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise ResourceLimitConfigError(f"{name} must be finite and positive, got {value}", field=name)
        # inf means unlimited bandwidth
        if math.isnan(self.throughput) or self.throughput <= 0:
            raise ResourceLimitConfigError(f"throughput must be positive, got {self.throughput}", field="throughput")
        for name in ("max_connections_per_origin", "max_concurrent_requests", "max_iterations"):
            if getattr(self, name) < 1:
                raise ResourceLimitConfigError(f"{name} must be at least 1", field=name)

    @property
    def effective_max_concurrent_requests(self) -> int:
        """Global connection limit, capped by what the bandwidth can saturate."""
        saturated = TcpConnection.maximum_saturated_connections(self.rtt, self.throughput)
        return max(min(saturated, self.max_concurrent_requests), 1)


@dataclass(frozen=True)
class NodeTiming:
    """Simulated timing of one node (ms from simulation start)."""

    start_time: float
    end_time: float
    queued_time: float = 0.0
    connection_timing: ConnectionTiming | None = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class SimulationResult:
    """Outcome of one simulation run."""

    time_in_ms: float
    node_timings: Mapping[str, NodeTiming]  # Ordered by start time
    label: str | None = None

    def timing_for(self, node_id: str) -> NodeTiming:
        try:
            return self.node_timings[node_id]
        except KeyError:
            raise GraphError(f"Node {node_id!r} was not simulated", node_id=node_id) from None

    def start_times(self) -> dict[str, float]:
        return {node_id: timing.start_time for node_id, timing in self.node_timings.items()}

    def end_times(self) -> dict[str, float]:
        return {node_id: timing.end_time for node_id, timing in self.node_timings.items()}

    def as_dict(self) -> dict:
        return {
            "label": self.label,
            "time_in_ms": self.time_in_ms,
            "nodes": {
                node_id: {
                    "start_time": timing.start_time,
                    "end_time": timing.end_time,
                    "duration": timing.duration,
                }
                for node_id, timing in self.node_timings.items()
            },
        }


@dataclass
class _NodeProgress:
    queued_time: float
    start_time: float = math.nan
    end_time: float = math.nan
    time_elapsed: float = 0.0
    time_elapsed_overshoot: float = 0.0
    bytes_downloaded: float = 0.0
    estimated_time_elapsed: float = 0.0
    connection_timing: ConnectionTiming | None = None


class _SimulationRun:
    """Mutable state of a single simulate() call."""

    def __init__(self, config: SimulatorConfig, graph: DependencyGraph, flexible_ordering: bool):
        self.config = config
        self.graph = graph
        self.flexible_ordering = flexible_ordering

        # Rejects cycles before any state is built
        order = graph.traverse()
        self.insertion_index = {node.id: i for i, node in enumerate(graph.nodes())}
        self.order = order

        self.dns_cache = DNSCache(config.rtt)
        self.pool = ConnectionPool(
            [node.request for node in graph.network_nodes()],
            rtt=config.rtt,
            throughput=config.throughput,
            additional_rtt_by_origin=config.additional_rtt_by_origin,
            server_response_time_by_origin=config.server_response_time_by_origin,
            max_connections_per_origin=config.max_connections_per_origin,
            max_total_connections=config.effective_max_concurrent_requests,
        )

        self.state = {node.id: NodeState.PENDING for node in order}
        self.remaining_dependencies = {node.id: len(node.dependency_ids) for node in order}
        self.progress: dict[str, _NodeProgress] = {}

        # (priority rank, readiness sequence, id)
        self.network_queue: list[tuple[int, int, str]] = []
        self.cpu_queue: deque[str] = deque()
        self.in_progress: dict[str, AnyNode] = {}
        self.cpu_in_progress = 0
        self._ready_sequence = 0

    # ═══════════════════════════════════════════════════════════════
    # MAIN LOOP
    # ═══════════════════════════════════════════════════════════════

    def run(self) -> tuple[float, dict[str, _NodeProgress]]:
        total_elapsed = 0.0
        self._enqueue_ready([node.id for node in self.order if not node.dependency_ids], 0.0)

        iterations = 0
        while self.network_queue or self.cpu_queue or self.in_progress:
            self._start_ready_nodes(total_elapsed)

            if not self.in_progress:
                stuck_id = self._first_queued_id()
                if self.flexible_ordering:
                    raise UnschedulableGraphError(
                        f"Failed to start node {stuck_id!r} even with flexible ordering", node_id=stuck_id
                    )
                logger.debug("No node could start (%r blocked), retrying with flexible ordering", stuck_id)
                self.flexible_ordering = True
                continue

            iterations += 1
            if iterations > self.config.max_iterations:
                raise UnschedulableGraphError(
                    f"Simulation exceeded {self.config.max_iterations} iterations",
                    node_id=next(iter(self.in_progress)),
                )

            self._update_network_capacity()
            time_period = self._find_next_completion_time()
            if not math.isfinite(time_period) or time_period < 0:
                raise UnschedulableGraphError(
                    f"Non-finite simulation step {time_period}", node_id=next(iter(self.in_progress))
                )
            total_elapsed += time_period

            newly_ready: list[str] = []
            for node in list(self.in_progress.values()):
                self._update_progress(node, time_period, total_elapsed, newly_ready)
            self._enqueue_ready(newly_ready, total_elapsed)

        pending = [node_id for node_id, state in self.state.items() if state is not NodeState.COMPLETE]
        if pending:
            raise UnschedulableGraphError(
                f"{len(pending)} nodes never became ready", node_id=pending[0]
            )
        return total_elapsed, self.progress

    def _first_queued_id(self) -> str:
        if self.network_queue:
            return self.network_queue[0][2]
        return self.cpu_queue[0]

    # ═══════════════════════════════════════════════════════════════
    # STATE TRANSITIONS
    # ═══════════════════════════════════════════════════════════════

    def _enqueue_ready(self, node_ids: list[str], total_elapsed: float):
        """Mark nodes READY; simultaneous arrivals keep graph insertion order."""
        for node_id in sorted(node_ids, key=self.insertion_index.__getitem__):
            node = self.graph.get(node_id)
            self.state[node_id] = NodeState.READY
            self.progress[node_id] = _NodeProgress(queued_time=total_elapsed)
            sequence = self._ready_sequence
            self._ready_sequence += 1
            if node.type is NodeType.CPU:
                self.cpu_queue.append(node_id)
            else:
                bisect.insort(self.network_queue, (node.request.priority_rank, sequence, node_id))

    def _mark_in_progress(self, node: AnyNode, total_elapsed: float):
        self.state[node.id] = NodeState.IN_PROGRESS
        self.progress[node.id].start_time = total_elapsed
        self.in_progress[node.id] = node
        if node.type is NodeType.CPU:
            self.cpu_in_progress += 1

    def _mark_complete(self, node: AnyNode, total_elapsed: float, newly_ready: list[str],
                       connection_timing: ConnectionTiming | None = None):
        progress = self.progress[node.id]
        progress.end_time = total_elapsed
        progress.connection_timing = connection_timing
        self.state[node.id] = NodeState.COMPLETE
        del self.in_progress[node.id]
        if node.type is NodeType.CPU:
            self.cpu_in_progress -= 1

        for dependent_id in node.dependent_ids:
            self.remaining_dependencies[dependent_id] -= 1
            if self.remaining_dependencies[dependent_id] == 0:
                newly_ready.append(dependent_id)

    def _start_ready_nodes(self, total_elapsed: float):
        if self.cpu_queue and self.cpu_in_progress == 0:
            self._mark_in_progress(self.graph.get(self.cpu_queue.popleft()), total_elapsed)

        started = []
        for entry in self.network_queue:
            node: NetworkNode = self.graph.get(entry[2])
            if not node.is_connectionless:
                connection = self.pool.acquire(
                    node.request, ignore_connection_reused=self.flexible_ordering
                )
                if connection is None:
                    continue
            started.append(entry)
            self._mark_in_progress(node, total_elapsed)
        for entry in started:
            self.network_queue.remove(entry)

    # ═══════════════════════════════════════════════════════════════
    # TIME ESTIMATION
    # ═══════════════════════════════════════════════════════════════

    def _update_network_capacity(self):
        active = self.pool.connections_in_use()
        if not active:
            return
        for connection in active:
            connection.set_throughput(self.config.throughput / len(active))

    def _cpu_time(self, node: CpuNode) -> float:
        multiplier = self.config.cpu_slowdown_multiplier
        if node.did_perform_layout:
            multiplier *= self.config.layout_task_multiplier
        return min(node.duration * multiplier, self.config.max_cpu_task_duration)

    @staticmethod
    def _connectionless_time(node: NetworkNode) -> float:
        size_mb = node.request.resource_size / 1024 / 1024
        if node.from_disk_cache:
            return DISK_CACHE_BASE_MS + DISK_CACHE_MS_PER_MB * size_mb
        return NON_NETWORK_BASE_MS + NON_NETWORK_MS_PER_MB * size_mb

    def _estimate_time_remaining(self, node: AnyNode) -> float:
        progress = self.progress[node.id]
        if node.type is NodeType.CPU:
            remaining = self._cpu_time(node) - progress.time_elapsed
        elif node.is_connectionless:
            remaining = self._connectionless_time(node) - progress.time_elapsed
        else:
            connection = self.pool.acquire_active_connection(node.request)
            dns_time = self.dns_cache.get_time_until_resolution(
                node.request, requested_at=progress.start_time, should_update_cache=True
            )
            calculation = connection.simulate_download_until(
                node.request.transfer_size - progress.bytes_downloaded,
                time_already_elapsed=progress.time_elapsed,
                dns_resolution_time=dns_time,
            )
            remaining = calculation.time_elapsed + progress.time_elapsed_overshoot

        progress.estimated_time_elapsed = remaining
        return remaining

    def _find_next_completion_time(self) -> float:
        return min(self._estimate_time_remaining(node) for node in self.in_progress.values())

    def _update_progress(self, node: AnyNode, time_period: float, total_elapsed: float,
                         newly_ready: list[str]):
        progress = self.progress[node.id]
        is_finished = progress.estimated_time_elapsed == time_period

        if node.type is NodeType.CPU or node.is_connectionless:
            if is_finished:
                self._mark_complete(node, total_elapsed, newly_ready)
            else:
                progress.time_elapsed += time_period
            return

        request = node.request
        connection = self.pool.acquire_active_connection(request)
        dns_time = self.dns_cache.get_time_until_resolution(
            request, requested_at=progress.start_time, should_update_cache=True
        )
        calculation = connection.simulate_download_until(
            request.transfer_size - progress.bytes_downloaded,
            time_already_elapsed=progress.time_elapsed,
            maximum_time_to_elapse=time_period - progress.time_elapsed_overshoot,
            dns_resolution_time=dns_time,
        )
        connection.set_congestion_window(calculation.congestion_window)
        connection.set_h2_overflow_bytes_downloaded(calculation.extra_bytes_downloaded)

        if is_finished:
            connection.set_warmed(True)
            self.pool.release(request)
            self._mark_complete(node, total_elapsed, newly_ready, calculation.connection_timing)
        else:
            progress.time_elapsed += calculation.time_elapsed
            progress.time_elapsed_overshoot += calculation.time_elapsed - time_period
            progress.bytes_downloaded += calculation.bytes_downloaded


class Simulator:
    """
    Simulates page loads under one set of network/CPU conditions.

    Usage:
        simulator = Simulator(SimulatorConfig(rtt=150, throughput=200_000))
        result = simulator.simulate(graph)
        result.time_in_ms
    """

    def __init__(self, config: SimulatorConfig | None = None):
        self.config = config or SimulatorConfig()

    @property
    def rtt(self) -> float:
        return self.config.rtt

    @property
    def throughput(self) -> float:
        return self.config.throughput

    def simulate(
        self,
        graph: DependencyGraph,
        label: str | None = None,
        flexible_ordering: bool = False,
    ) -> SimulationResult:
        """
        Estimate when every node of graph starts and finishes.

        Args:
            graph: Dependency graph (not modified)
            label: Name recorded on the result
            flexible_ordering: Ignore observed connection warmth from the start

        Returns:
            SimulationResult with per-node timings ordered by start time

        Raises:
            UnschedulableGraphError: cycle, stuck node, or runaway run
        """
        cycle = graph.find_cycle()
        if cycle:
            raise UnschedulableGraphError(f"Cannot simulate a cyclic graph: {' -> '.join(cycle)}",
                                          node_id=cycle[0])

        logger.debug("Simulating %s (%d nodes)", label or "graph", len(graph))
        run = _SimulationRun(self.config, graph, flexible_ordering)
        total_elapsed, progress = run.run()

        ordered = sorted(progress.items(), key=lambda item: (item[1].start_time, run.insertion_index[item[0]]))
        node_timings = {
            node_id: NodeTiming(
                start_time=p.start_time,
                end_time=p.end_time,
                queued_time=p.queued_time,
                connection_timing=p.connection_timing,
            )
            for node_id, p in ordered
        }
        logger.debug("Simulated %s: %.1f ms", label or "graph", total_elapsed)
        return SimulationResult(
            time_in_ms=total_elapsed,
            node_timings=MappingProxyType(node_timings),
            label=label,
        )
