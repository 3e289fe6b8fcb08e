"""
TCP connection model: handshakes, slow start and congestion window.

A cold connection pays DNS, the TCP handshake and (for TLS) one more round
trip before the request goes out. The response then arrives in round
trips whose size doubles each time (slow start) until the window can
carry the connection's share of the bandwidth.

Throughput is in bytes per second, times in ms.
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass

INITIAL_CONGESTION_WINDOW = 10  # Segments
TCP_SEGMENT_SIZE = 1460  # Bytes


@dataclass(frozen=True)
class ConnectionTiming:
    """Simulated connection phases of one download (ms)."""

    dns_resolution_time: float = 0.0
    connection_time: float = 0.0
    ssl_time: float = 0.0
    time_to_first_byte: float = 0.0


@dataclass(frozen=True)
class DownloadResult:
    """Outcome of simulating a download for a bounded time."""

    round_trips: int
    time_elapsed: float
    bytes_downloaded: float
    extra_bytes_downloaded: float
    congestion_window: int
    connection_timing: ConnectionTiming


class TcpConnection:
    """
    One simulated connection to an origin.

    State that outlives a single download: warmth (handshake done),
    congestion window, and for h2 the bytes a previous request already
    pulled into the window.
    """

    def __init__(
        self,
        rtt: float,
        throughput: float,
        server_latency: float = 0.0,
        ssl: bool = True,
        h2: bool = False,
    ):
        self._rtt = rtt
        self._throughput = throughput
        self._server_latency = server_latency
        self._ssl = ssl
        self._h2 = h2

        self._warmed = False
        self._congestion_window = INITIAL_CONGESTION_WINDOW
        self._h2_overflow_bytes_downloaded = 0.0

    @staticmethod
    def maximum_saturated_connections(rtt: float, available_throughput: float) -> float:
        """How many connections can each fill a window of one segment per RTT."""
        if math.isinf(available_throughput):
            return math.inf
        round_trips_per_second = 1000 / rtt
        bytes_per_second_per_connection = round_trips_per_second * TCP_SEGMENT_SIZE
        return math.floor(available_throughput / bytes_per_second_per_connection)

    def _compute_maximum_congestion_window_in_segments(self) -> float:
        if math.isinf(self._throughput):
            return math.inf
        bytes_per_round_trip = self._throughput * (self._rtt / 1000)
        return math.floor(bytes_per_round_trip / TCP_SEGMENT_SIZE)

    # ═══════════════════════════════════════════════════════════════
    # STATE
    # ═══════════════════════════════════════════════════════════════

    @property
    def warmed(self) -> bool:
        return self._warmed

    @property
    def congestion_window(self) -> int:
        return self._congestion_window

    @property
    def is_h2(self) -> bool:
        return self._h2

    @property
    def throughput(self) -> float:
        return self._throughput

    def set_throughput(self, throughput: float):
        self._throughput = throughput

    def set_congestion_window(self, congestion_window: int):
        self._congestion_window = congestion_window

    def set_warmed(self, warmed: bool):
        self._warmed = warmed

    def set_h2_overflow_bytes_downloaded(self, bytes_downloaded: float):
        """Bytes of the last window that belong to the next h2 request."""
        if not self._h2:
            return
        self._h2_overflow_bytes_downloaded = bytes_downloaded

    def clone(self) -> TcpConnection:
        return copy.copy(self)

    # ═══════════════════════════════════════════════════════════════
    # SIMULATION
    # ═══════════════════════════════════════════════════════════════

    def simulate_download_until(
        self,
        bytes_to_download: float,
        time_already_elapsed: float = 0.0,
        maximum_time_to_elapse: float = math.inf,
        dns_resolution_time: float = 0.0,
    ) -> DownloadResult:
        """
        Simulate downloading bytes_to_download on this connection.

        Args:
            bytes_to_download: Bytes still to fetch
            time_already_elapsed: Time this download has already run
            maximum_time_to_elapse: Stop after this much additional time
            dns_resolution_time: DNS wait for a cold connection

        Returns:
            DownloadResult; bytes_downloaded is what arrived within the bound
        """
        # h2 lets a request reuse window space the previous one left over
        if self._warmed and self._h2:
            bytes_to_download -= self._h2_overflow_bytes_downloaded

        two_way_latency = self._rtt
        one_way_latency = two_way_latency / 2
        maximum_congestion_window = self._compute_maximum_congestion_window_in_segments()

        ssl_time = two_way_latency if self._ssl else 0.0
        handshake_and_request = one_way_latency
        if not self._warmed:
            # DNS, SYN, SYN-ACK, ACK + request, then TLS with false start
            handshake_and_request = dns_resolution_time + one_way_latency * 3 + ssl_time

        round_trips = math.ceil(handshake_and_request / two_way_latency)
        time_to_first_byte = handshake_and_request + self._server_latency + one_way_latency
        if self._warmed and self._h2:
            time_to_first_byte = 0.0

        time_elapsed_for_ttfb = max(time_to_first_byte - time_already_elapsed, 0.0)
        maximum_download_time = maximum_time_to_elapse - time_elapsed_for_ttfb

        congestion_window = min(self._congestion_window, maximum_congestion_window)
        total_bytes_downloaded = 0.0
        if time_elapsed_for_ttfb > 0:
            # The first window arrives with the first byte
            total_bytes_downloaded = congestion_window * TCP_SEGMENT_SIZE
        else:
            round_trips = 0

        download_time_elapsed = 0.0
        bytes_remaining = bytes_to_download - total_bytes_downloaded
        while bytes_remaining > 0 and download_time_elapsed <= maximum_download_time:
            round_trips += 1
            download_time_elapsed += two_way_latency
            congestion_window = max(min(maximum_congestion_window, congestion_window * 2), 1)
            bytes_in_window = congestion_window * TCP_SEGMENT_SIZE
            total_bytes_downloaded += bytes_in_window
            bytes_remaining -= bytes_in_window

        time_elapsed = time_elapsed_for_ttfb + download_time_elapsed
        extra_bytes_downloaded = (
            max(total_bytes_downloaded - bytes_to_download, 0.0) if self._h2 else 0.0
        )
        bytes_downloaded = max(min(total_bytes_downloaded, bytes_to_download), 0.0)

        if self._warmed:
            connection_timing = ConnectionTiming(time_to_first_byte=time_to_first_byte)
        else:
            connection_timing = ConnectionTiming(
                dns_resolution_time=dns_resolution_time,
                connection_time=handshake_and_request - dns_resolution_time,
                ssl_time=ssl_time,
                time_to_first_byte=time_to_first_byte,
            )

        return DownloadResult(
            round_trips=round_trips,
            time_elapsed=time_elapsed,
            bytes_downloaded=bytes_downloaded,
            extra_bytes_downloaded=extra_bytes_downloaded,
            congestion_window=congestion_window,
            connection_timing=connection_timing,
        )
