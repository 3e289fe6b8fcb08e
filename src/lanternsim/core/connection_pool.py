"""
Connection pool: the bounded set of simulated connections per origin.

The pool is rebuilt for every simulation from the requests in the graph:
- one connection per request that observed a fresh connection
- padded to the per-origin limit (h2 origins multiplex over one)
- truncated at the per-origin limit

A request may only run on a free connection of its origin, and never more
than max_total_connections run at once. Where it can, the pool hands out
connections whose warmth matches what the request observed, so a request
that paid a handshake in reality pays one in simulation too.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from lanternsim.core.errors import GraphError, ResourceLimitConfigError
from lanternsim.core.network_analyzer import SUMMARY, NetworkAnalyzer
from lanternsim.core.records import NetworkRequest
from lanternsim.core.tcp_connection import TcpConnection

logger = logging.getLogger(__name__)


DEFAULT_SERVER_RESPONSE_TIME = 30.0  # ms
DEFAULT_MAX_CONNECTIONS_PER_ORIGIN = 6
DEFAULT_MAX_TOTAL_CONNECTIONS = 10


class ConnectionPool:
    """Connections available to one simulation run."""

    def __init__(
        self,
        requests: Iterable[NetworkRequest],
        *,
        rtt: float,
        throughput: float,
        additional_rtt_by_origin: Mapping[str, float] | None = None,
        server_response_time_by_origin: Mapping[str, float] | None = None,
        max_connections_per_origin: int = DEFAULT_MAX_CONNECTIONS_PER_ORIGIN,
        max_total_connections: int = DEFAULT_MAX_TOTAL_CONNECTIONS,
    ):
        if max_connections_per_origin < 1:
            raise ResourceLimitConfigError(
                "max_connections_per_origin must be at least 1", field="max_connections_per_origin"
            )
        if max_total_connections < 1:
            raise ResourceLimitConfigError(
                "max_total_connections must be at least 1", field="max_total_connections"
            )

        self._requests = list(requests)
        self._rtt = rtt
        self._throughput = throughput
        self._additional_rtt_by_origin = dict(additional_rtt_by_origin or {})
        self._server_response_time_by_origin = dict(server_response_time_by_origin or {})
        self.max_connections_per_origin = max_connections_per_origin
        self.max_total_connections = max_total_connections

        self._connection_reused = NetworkAnalyzer.estimate_if_connection_was_reused(
            self._requests, force_coarse_estimates=True
        )
        self._connections_by_origin: dict[str, list[TcpConnection]] = {}
        self._strict_warmth: dict[str, bool] = {}
        self._connections_by_request: dict[str, TcpConnection] = {}
        self._in_use: dict[TcpConnection, str] = {}  # connection -> origin

        self._initialize_connections()

    def _initialize_connections(self):
        for origin, requests in NetworkAnalyzer.group_by_origin(self._requests).items():
            if all(r.from_disk_cache or r.is_non_network_protocol for r in requests):
                continue

            is_h2 = any(r.protocol == "h2" for r in requests)
            is_ssl = any(r.is_secure for r in requests)
            additional_rtt = self._additional_rtt_by_origin.get(origin, 0.0)
            server_latency = self._server_response_time_by_origin.get(
                origin,
                self._server_response_time_by_origin.get(SUMMARY, DEFAULT_SERVER_RESPONSE_TIME),
            )

            connections = []
            cold_requests = [r for r in requests if not self._connection_reused.get(r.request_id)]
            for _ in cold_requests:
                connections.append(
                    TcpConnection(self._rtt + additional_rtt, self._throughput, server_latency, is_ssl, is_h2)
                )

            minimum = 1 if is_h2 else self.max_connections_per_origin
            while len(connections) < minimum:
                connections.append(
                    TcpConnection(self._rtt + additional_rtt, self._throughput, server_latency, is_ssl, is_h2)
                )

            # Truncated origins cannot honour every observed warmth
            self._strict_warmth[origin] = len(connections) <= self.max_connections_per_origin
            self._connections_by_origin[origin] = connections[: self.max_connections_per_origin]

    # ═══════════════════════════════════════════════════════════════
    # ACQUIRE / RELEASE
    # ═══════════════════════════════════════════════════════════════

    def acquire(self, request: NetworkRequest, ignore_connection_reused: bool = False) -> TcpConnection | None:
        """
        Reserve a connection for request.

        Returns:
            The free connection of the request's origin with the largest
            congestion window (matching observed warmth unless ignored),
            or None when the origin or the global limit is exhausted.

        Raises:
            GraphError: the request already holds a connection, or its
                origin has no connections in this pool
        """
        if request.request_id in self._connections_by_request:
            raise GraphError("Request already holds a connection", node_id=request.request_id)
        if len(self._in_use) >= self.max_total_connections:
            return None

        origin = request.origin
        connections = self._connections_by_origin.get(origin)
        if connections is None:
            raise GraphError(f"No connections for origin {origin}", node_id=request.request_id)

        observed_reuse = self._connection_reused.get(request.request_id, False)
        match_warmth = not ignore_connection_reused and self._strict_warmth[origin]

        best = None
        for connection in connections:
            if connection in self._in_use:
                continue
            if match_warmth and connection.warmed != observed_reuse:
                continue
            if best is None or connection.congestion_window > best.congestion_window:
                best = connection

        if best is None:
            return None
        self._in_use[best] = origin
        self._connections_by_request[request.request_id] = best
        return best

    def acquire_active_connection(self, request: NetworkRequest) -> TcpConnection:
        """The connection currently held by request."""
        try:
            return self._connections_by_request[request.request_id]
        except KeyError:
            raise GraphError("Request does not hold a connection", node_id=request.request_id) from None

    def release(self, request: NetworkRequest):
        connection = self._connections_by_request.pop(request.request_id, None)
        if connection is not None:
            self._in_use.pop(connection, None)

    # ═══════════════════════════════════════════════════════════════
    # INSPECTION
    # ═══════════════════════════════════════════════════════════════

    def connections_in_use(self) -> list[TcpConnection]:
        return list(self._in_use)

    def active_count(self, origin: str | None = None) -> int:
        if origin is None:
            return len(self._in_use)
        return sum(1 for in_use_origin in self._in_use.values() if in_use_origin == origin)

    def connections_for_origin(self, origin: str) -> list[TcpConnection]:
        return list(self._connections_by_origin.get(origin, []))
