"""
DNS cache: hostname resolution cost shared across connections.

Resolving a host costs two round trips the first time it is seen; any
later request to the same host only waits for that resolution to finish.
"""

from __future__ import annotations

from lanternsim.core.records import NetworkRequest

# A resolution is assumed to take this many round trips
DNS_RESOLUTION_RTT_MULTIPLIER = 2


class DNSCache:
    """Per-run record of when each host finished resolving."""

    def __init__(self, rtt: float):
        self.rtt = rtt
        self._resolved_at: dict[str, float] = {}

    def get_time_until_resolution(
        self,
        request: NetworkRequest,
        requested_at: float = 0.0,
        should_update_cache: bool = False,
    ) -> float:
        """
        Time the request waits on DNS if it asks at requested_at.

        Args:
            request: Request whose host is resolved
            requested_at: Simulated time of the lookup
            should_update_cache: Record the resolution for later requests
        """
        host = request.host
        time_until_resolved = self.rtt * DNS_RESOLUTION_RTT_MULTIPLIER
        if host in self._resolved_at:
            cached_wait = max(self._resolved_at[host] - requested_at, 0.0)
            time_until_resolved = min(cached_wait, time_until_resolved)

        if should_update_cache:
            self.set_resolved_at(host, requested_at + time_until_resolved)
        return time_until_resolved

    def set_resolved_at(self, host: str, resolved_at: float):
        """Keep the earliest known resolution time for host."""
        previous = self._resolved_at.get(host, resolved_at)
        self._resolved_at[host] = min(previous, resolved_at)
