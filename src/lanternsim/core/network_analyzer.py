"""
Network analyzer: per-origin RTT, server latency and throughput.

The observed (unthrottled) load tells us how far away each origin is and
how slow its server is. Those are the two quantities the simulator cannot
derive from the throttling settings alone.

RTT estimation runs in two tiers per origin:
1. Connection timing (TCP/TLS handshake durations) when available
2. Coarse estimates scaled by 0.3, only for origins with no tier-1 data:
   - download time after the first byte over slow-start round trips
   - send_start over the handshake round trips
   - time to first byte minus a resource-type server share

Sentinel (-1) and negative values never reach a summary.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Sequence

import numpy as np

from lanternsim.core.cache import computed_artifact
from lanternsim.core.errors import NoTimingInformationError
from lanternsim.core.records import NetworkRequest, ResourceTiming

logger = logging.getLogger(__name__)


SUMMARY = "__SUMMARY__"

INITIAL_CWND = 14 * 1024  # Bytes in the first congestion window

# Share of time-to-first-byte spent on the server, by resource type
DEFAULT_SERVER_RESPONSE_PERCENTAGE = 0.4
SERVER_RESPONSE_PERCENTAGE_OF_TTFB = {
    "Document": 0.9,
    "XHR": 0.9,
    "Fetch": 0.9,
}

# Estimator signature: (request, timing, connection_reused) -> estimates
Estimator = Callable[[NetworkRequest, ResourceTiming, bool], "float | list[float] | None"]


@dataclass(frozen=True)
class OriginSummary:
    """Summary statistics of the estimates for one origin."""

    min: float
    max: float
    avg: float
    median: float


@dataclass(frozen=True)
class NetworkAnalysis:
    """
    Network characteristics of the observed load.

    throughput is in bytes per second; rtt and the origin maps in ms.
    Both origin maps carry a SUMMARY entry.
    """

    rtt: float
    throughput: float
    additional_rtt_by_origin: Mapping[str, float] = field(default_factory=dict)
    server_response_time_by_origin: Mapping[str, float] = field(default_factory=dict)


def _valid(value: float) -> bool:
    return math.isfinite(value) and value >= 0


class NetworkAnalyzer:
    """Static helpers that derive network characteristics from requests."""

    SUMMARY = SUMMARY

    # ═══════════════════════════════════════════════════════════════
    # GROUPING / SUMMARIES
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    def group_by_origin(requests: Iterable[NetworkRequest]) -> dict[str, list[NetworkRequest]]:
        grouped: dict[str, list[NetworkRequest]] = {}
        for request in requests:
            grouped.setdefault(request.origin, []).append(request)
        return grouped

    @staticmethod
    def summarize(values: Sequence[float]) -> OriginSummary:
        array = np.sort(np.asarray(values, dtype=np.float64))
        return OriginSummary(
            min=float(array[0]),
            max=float(array[-1]),
            avg=float(array.mean()),
            median=float(np.median(array)),
        )

    @staticmethod
    def summarize_by_origin(values_by_origin: Mapping[str, list[float]]) -> dict[str, OriginSummary]:
        """Summarize each origin and add a SUMMARY entry over all values."""
        summaries: dict[str, OriginSummary] = {}
        everything: list[float] = []
        for origin, values in values_by_origin.items():
            summaries[origin] = NetworkAnalyzer.summarize(values)
            everything.extend(values)
        if everything:
            summaries[SUMMARY] = NetworkAnalyzer.summarize(everything)
        return summaries

    # ═══════════════════════════════════════════════════════════════
    # CONNECTION REUSE
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    def can_trust_connection_information(requests: Sequence[NetworkRequest]) -> bool:
        """
        Connection data is untrustworthy when every request shares one
        connection id, or when some connection was never opened by any of
        its requests (it must have started at some point).
        """
        connection_was_started: dict[str, bool] = {}
        for request in requests:
            started = connection_was_started.get(request.connection_id, False)
            connection_was_started[request.connection_id] = started or not request.connection_reused
        if len(connection_was_started) <= 1:
            return False
        return all(connection_was_started.values())

    @staticmethod
    def estimate_if_connection_was_reused(
        requests: Sequence[NetworkRequest],
        force_coarse_estimates: bool = False,
    ) -> dict[str, bool]:
        """
        Map request id -> whether it ran on an already-open connection.

        Uses the protocol data when it can be trusted, else a heuristic:
        the first request of each origin is cold, and a later one is reused
        when it started after the origin's earliest finish, or is h2.
        """
        if not force_coarse_estimates and NetworkAnalyzer.can_trust_connection_information(requests):
            return {request.request_id: request.connection_reused for request in requests}

        reused: dict[str, bool] = {}
        for origin_requests in NetworkAnalyzer.group_by_origin(requests).values():
            earliest_reuse_possible = min(request.end_time for request in origin_requests)
            first = min(origin_requests, key=lambda r: r.start_time)
            for request in origin_requests:
                if request is first:
                    reused[request.request_id] = False
                else:
                    started_after_finish = request.start_time >= earliest_reuse_possible
                    reused[request.request_id] = started_after_finish or request.protocol == "h2"
        return reused

    # ═══════════════════════════════════════════════════════════════
    # RTT ESTIMATORS
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    def _rtt_via_connection_timing(request, timing, connection_reused):
        if connection_reused:
            return None
        connect_start, connect_end = timing.connect_start, timing.connect_end
        ssl_start, ssl_end = timing.ssl_start, timing.ssl_end
        if connect_start < 0 or connect_end < 0:
            return None
        if request.protocol.startswith("h3"):
            # QUIC folds TCP and TLS into one round trip
            return [connect_end - connect_start]
        if ssl_start >= 0 and ssl_end >= 0 and ssl_start != connect_start:
            # TCP handshake then TLS handshake, one round trip each
            return [connect_end - ssl_start, ssl_start - connect_start]
        return [connect_end - connect_start]

    @staticmethod
    def _rtt_via_download_timing(request, timing, connection_reused):
        if connection_reused:
            return None
        # Only downloads that outgrew the initial congestion window
        if request.transfer_size <= INITIAL_CWND:
            return None
        if timing.receive_headers_end < 0:
            return None
        total_time = request.end_time - request.start_time
        download_after_first_byte = total_time - timing.receive_headers_end
        round_trips = math.log2(request.transfer_size / INITIAL_CWND)
        # Past a few round trips bandwidth dominates latency
        if round_trips > 5:
            return None
        return download_after_first_byte / round_trips

    @staticmethod
    def _rtt_via_send_start_timing(request, timing, connection_reused):
        if connection_reused:
            return None
        if timing.send_start < 0:
            return None
        # DNS, TCP (not for QUIC) and TLS happen before the request is sent
        round_trips = 1
        if not request.protocol.startswith("h3"):
            round_trips += 1
        if request.is_secure:
            round_trips += 1
        return timing.send_start / round_trips

    @staticmethod
    def _rtt_via_headers_end_timing(request, timing, connection_reused):
        if timing.receive_headers_end < 0:
            return None
        percentage = SERVER_RESPONSE_PERCENTAGE_OF_TTFB.get(
            request.resource_type, DEFAULT_SERVER_RESPONSE_PERCENTAGE
        )
        estimated_server_time = timing.receive_headers_end * percentage
        # Reused connection: one round trip for the request itself
        round_trips = 1
        if not connection_reused:
            round_trips += 1  # DNS
            if not request.protocol.startswith("h3"):
                round_trips += 1  # TCP
            if request.is_secure:
                round_trips += 1  # TLS
        return max((timing.receive_headers_end - estimated_server_time) / round_trips, 3.0)

    @staticmethod
    def _collect(
        requests: Sequence[NetworkRequest],
        reused: Mapping[str, bool],
        estimator: Estimator,
        multiplier: float = 1.0,
    ) -> list[float]:
        estimates: list[float] = []
        for request in requests:
            if request.timing is None:
                continue
            value = estimator(request, request.timing, reused.get(request.request_id, False))
            if value is None:
                continue
            values = value if isinstance(value, list) else [value]
            estimates.extend(v * multiplier for v in values if _valid(v))
        return estimates

    @staticmethod
    def estimate_rtt_by_origin(
        requests: Sequence[NetworkRequest],
        *,
        force_coarse_estimates: bool = False,
        coarse_estimate_multiplier: float = 0.3,
        use_download_estimates: bool = True,
        use_send_start_estimates: bool = True,
        use_headers_end_estimates: bool = True,
    ) -> dict[str, OriginSummary]:
        """
        Estimate RTT per origin.

        Returns:
            origin -> OriginSummary, plus a SUMMARY entry

        Raises:
            NoTimingInformationError: no origin produced any estimate
        """
        reused = NetworkAnalyzer.estimate_if_connection_was_reused(requests)
        estimates_by_origin: dict[str, list[float]] = {}

        for origin, origin_requests in NetworkAnalyzer.group_by_origin(requests).items():
            estimates: list[float] = []
            if not force_coarse_estimates:
                estimates = NetworkAnalyzer._collect(
                    origin_requests, reused, NetworkAnalyzer._rtt_via_connection_timing
                )

            # Missing for reused connections, h2 follow-ups and cached responses
            if not estimates:
                coarse = []
                if use_download_estimates:
                    coarse.append(NetworkAnalyzer._rtt_via_download_timing)
                if use_send_start_estimates:
                    coarse.append(NetworkAnalyzer._rtt_via_send_start_timing)
                if use_headers_end_estimates:
                    coarse.append(NetworkAnalyzer._rtt_via_headers_end_timing)
                for estimator in coarse:
                    estimates.extend(NetworkAnalyzer._collect(
                        origin_requests, reused, estimator, coarse_estimate_multiplier
                    ))
                if estimates:
                    logger.debug("Using coarse RTT estimates for %s", origin)

            if estimates:
                estimates_by_origin[origin] = estimates

        if not estimates_by_origin:
            raise NoTimingInformationError("No timing information available")
        return NetworkAnalyzer.summarize_by_origin(estimates_by_origin)

    @staticmethod
    def estimate_server_response_time_by_origin(
        requests: Sequence[NetworkRequest],
        rtt_by_origin: Mapping[str, float] | None = None,
    ) -> dict[str, OriginSummary]:
        """
        Estimate server think time per origin as TTFB minus one RTT.

        rtt_by_origin defaults to the minimum RTT estimate per origin.
        """
        if rtt_by_origin is None:
            rtt_by_origin = {
                origin: summary.min
                for origin, summary in NetworkAnalyzer.estimate_rtt_by_origin(requests).items()
            }

        estimates_by_origin: dict[str, list[float]] = {}
        for origin, origin_requests in NetworkAnalyzer.group_by_origin(requests).items():
            rtt = rtt_by_origin.get(origin, rtt_by_origin.get(SUMMARY, 0.0))
            estimates = []
            for request in origin_requests:
                timing = request.timing
                if timing is None or timing.receive_headers_end < 0 or timing.send_end < 0:
                    continue
                ttfb = timing.receive_headers_end - timing.send_end
                estimates.append(max(ttfb - rtt, 0.0))
            if estimates:
                estimates_by_origin[origin] = estimates
        return NetworkAnalyzer.summarize_by_origin(estimates_by_origin)

    # ═══════════════════════════════════════════════════════════════
    # THROUGHPUT
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    def estimate_throughput(requests: Iterable[NetworkRequest]) -> float:
        """
        Observed bytes per second while any response body was downloading.

        Concurrent downloads are merged into a union of intervals so that
        overlap is not double counted. Returns inf when no request qualifies.
        """
        total_bytes = 0
        intervals: list[tuple[float, float]] = []
        for request in requests:
            if (
                not request.finished
                or request.failed
                or request.status_code >= 400
                or request.transfer_size <= 0
                or request.scheme == "data"
                or request.from_disk_cache
            ):
                continue
            total_bytes += request.transfer_size
            intervals.append((request.headers_end_time, request.end_time))

        if not intervals:
            return math.inf

        intervals.sort()
        total_duration = 0.0
        current_start, current_end = intervals[0]
        for start, end in intervals[1:]:
            if start > current_end:
                total_duration += current_end - current_start
                current_start, current_end = start, end
            else:
                current_end = max(current_end, end)
        total_duration += current_end - current_start

        if total_duration <= 0:
            return math.inf
        return total_bytes / (total_duration / 1000)

    # ═══════════════════════════════════════════════════════════════
    # LOOKUPS
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    def find_main_document(requests: Sequence[NetworkRequest]) -> NetworkRequest:
        main = next((r for r in requests if r.is_main_document), None)
        if main is not None:
            return main
        documents = sorted(
            (r for r in requests if r.resource_type == "Document"), key=lambda r: r.start_time
        )
        if not documents:
            raise NoTimingInformationError("Unable to identify the main document")
        return documents[0]

    @staticmethod
    def find_resource_for_url(requests: Iterable[NetworkRequest], url: str) -> NetworkRequest | None:
        """Last non-redirected request for url (redirect chains end at it)."""
        for request in requests:
            if request.url == url and request.redirect_destination_id is None:
                return request
        return None

    @staticmethod
    def analyze(requests: Sequence[NetworkRequest]) -> NetworkAnalysis:
        """
        Full analysis of one observed load.

        Base RTT is the smallest per-origin minimum; every other origin gets
        the difference as additional RTT. Server response time is the median
        per origin.
        """
        rtt_by_origin = NetworkAnalyzer.estimate_rtt_by_origin(requests)
        min_rtt_by_origin = {origin: summary.min for origin, summary in rtt_by_origin.items()}
        rtt = min(min_rtt_by_origin.values())

        server_by_origin = NetworkAnalyzer.estimate_server_response_time_by_origin(
            requests, rtt_by_origin=min_rtt_by_origin
        )

        additional_rtt_by_origin = {
            origin: origin_rtt - rtt for origin, origin_rtt in min_rtt_by_origin.items()
        }
        for origin in NetworkAnalyzer.group_by_origin(requests):
            additional_rtt_by_origin.setdefault(origin, 0.0)

        return NetworkAnalysis(
            rtt=rtt,
            throughput=NetworkAnalyzer.estimate_throughput(requests),
            additional_rtt_by_origin=additional_rtt_by_origin,
            server_response_time_by_origin={
                origin: summary.median for origin, summary in server_by_origin.items()
            },
        )


@computed_artifact("network-analysis")
def analyze_network(requests: Sequence[NetworkRequest]) -> NetworkAnalysis:
    """Memoizable entry point; use analyze_network.request(requests, cache=...)."""
    return NetworkAnalyzer.analyze(list(requests))
