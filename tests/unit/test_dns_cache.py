"""Unit tests for DNSCache."""

from lanternsim.core.dns_cache import DNSCache
from lanternsim.core.records import NetworkRequest


def request(url):
    return NetworkRequest("r", url)


class TestDNSCache:
    """Tests for DNSCache."""

    def test_first_lookup_costs_two_round_trips(self):
        cache = DNSCache(rtt=100)
        assert cache.get_time_until_resolution(request("https://a.com/")) == 200

    def test_lookup_without_update_is_not_cached(self):
        cache = DNSCache(rtt=100)
        cache.get_time_until_resolution(request("https://a.com/"))
        assert cache.get_time_until_resolution(request("https://a.com/"), requested_at=500) == 200

    def test_waits_for_pending_resolution(self):
        cache = DNSCache(rtt=100)
        cache.get_time_until_resolution(request("https://a.com/"), requested_at=0, should_update_cache=True)
        # Resolution finishes at 200
        assert cache.get_time_until_resolution(request("https://a.com/x"), requested_at=50) == 150
        assert cache.get_time_until_resolution(request("https://a.com/y"), requested_at=300) == 0

    def test_hosts_are_independent(self):
        cache = DNSCache(rtt=100)
        cache.get_time_until_resolution(request("https://a.com/"), should_update_cache=True)
        assert cache.get_time_until_resolution(request("https://b.com/"), requested_at=300) == 200

    def test_keeps_earliest_resolution(self):
        cache = DNSCache(rtt=100)
        cache.set_resolved_at("a.com", 100)
        cache.set_resolved_at("a.com", 400)
        assert cache.get_time_until_resolution(request("https://a.com/"), requested_at=50) == 50
