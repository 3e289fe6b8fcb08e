"""Unit tests for NetworkAnalyzer."""

import math

import pytest

from lanternsim.core.cache import ComputedCache
from lanternsim.core.errors import NoTimingInformationError
from lanternsim.core.network_analyzer import SUMMARY, NetworkAnalyzer, analyze_network
from lanternsim.core.records import ResourceTiming


class TestSummaries:
    """Tests for summarize and summarize_by_origin."""

    def test_summarize(self):
        summary = NetworkAnalyzer.summarize([4, 1, 3, 2])
        assert summary.min == 1
        assert summary.max == 4
        assert summary.avg == 2.5
        assert summary.median == 2.5

    def test_summary_entry(self):
        summaries = NetworkAnalyzer.summarize_by_origin({"a": [10, 20], "b": [30]})
        assert summaries["a"].median == 15
        assert summaries[SUMMARY].min == 10
        assert summaries[SUMMARY].max == 30


class TestConnectionReuse:
    """Tests for connection reuse estimation."""

    def test_untrusted_single_connection(self, make_request):
        requests = [
            make_request("a", connection_id="1"),
            make_request("b", connection_id="1", connection_reused=True),
        ]
        assert not NetworkAnalyzer.can_trust_connection_information(requests)

    def test_untrusted_never_started(self, make_request):
        requests = [
            make_request("a", connection_id="1"),
            make_request("b", connection_id="2", connection_reused=True),
        ]
        assert not NetworkAnalyzer.can_trust_connection_information(requests)

    def test_trusted(self, page_requests):
        assert NetworkAnalyzer.can_trust_connection_information(page_requests)
        reused = NetworkAnalyzer.estimate_if_connection_was_reused(page_requests)
        assert reused["font"] is True
        assert reused["hero"] is False

    def test_coarse_heuristic(self, make_request):
        requests = [
            make_request("first", "https://a.com/1", start=0, end=100),
            make_request("overlap", "https://a.com/2", start=50, end=150),
            make_request("after", "https://a.com/3", start=120, end=200),
            make_request("h2", "https://a.com/4", start=10, end=90, protocol="h2"),
            make_request("other", "https://b.com/1", start=130, end=160),
        ]
        reused = NetworkAnalyzer.estimate_if_connection_was_reused(requests, force_coarse_estimates=True)
        assert reused == {"first": False, "overlap": False, "after": True, "h2": True, "other": False}


class TestRttEstimates:
    """Tests for estimate_rtt_by_origin."""

    def test_connection_timing(self, page_requests):
        rtt = NetworkAnalyzer.estimate_rtt_by_origin(page_requests)
        assert rtt["https://example.com"].min == 30
        assert rtt["https://example.com"].max == 50
        assert rtt["https://cdn.example.com"].min == 100
        assert rtt[SUMMARY].min == 30

    def test_tcp_only_connection(self, make_request):
        request = make_request("a", timing=ResourceTiming(connect_start=0, connect_end=40))
        rtt = NetworkAnalyzer.estimate_rtt_by_origin([request])
        assert rtt["http://example.com"].min == 40

    def test_coarse_send_start(self, make_request):
        request = make_request("a", "https://a.com/", timing=ResourceTiming(send_start=90))
        rtt = NetworkAnalyzer.estimate_rtt_by_origin(
            [request], use_download_estimates=False, use_headers_end_estimates=False
        )
        # DNS + TCP + TLS before the send, then scaled by 0.3
        assert rtt["https://a.com"].min == pytest.approx(9.0)

    def test_coarse_only_when_no_connection_timing(self, make_request):
        requests = [
            make_request("a", "https://a.com/1", timing=ResourceTiming(connect_start=0, connect_end=40)),
            make_request("b", "https://a.com/2", timing=ResourceTiming(send_start=3)),
        ]
        rtt = NetworkAnalyzer.estimate_rtt_by_origin(requests)
        assert rtt["https://a.com"].min == 40
        assert rtt["https://a.com"].max == 40

    def test_negative_values_discarded(self, make_request):
        requests = [
            make_request("a", "https://a.com/1", timing=ResourceTiming(connect_start=50, connect_end=10)),
            make_request("b", "https://a.com/2", timing=ResourceTiming(connect_start=0, connect_end=25)),
        ]
        rtt = NetworkAnalyzer.estimate_rtt_by_origin(requests)
        assert rtt["https://a.com"].min == 25

    def test_sentinels_only(self, make_request):
        requests = [
            make_request("a", timing=ResourceTiming()),
            make_request("b", "https://b.com/"),
        ]
        with pytest.raises(NoTimingInformationError):
            NetworkAnalyzer.estimate_rtt_by_origin(requests)


class TestServerResponseTime:
    """Tests for estimate_server_response_time_by_origin."""

    def test_ttfb_minus_rtt(self, make_request):
        request = make_request(
            "a",
            timing=ResourceTiming(connect_start=0, connect_end=40, send_end=50, receive_headers_end=200),
        )
        server = NetworkAnalyzer.estimate_server_response_time_by_origin([request])
        assert server["http://example.com"].median == 110

    def test_never_negative(self, make_request):
        request = make_request("a", timing=ResourceTiming(send_end=50, receive_headers_end=60))
        server = NetworkAnalyzer.estimate_server_response_time_by_origin(
            [request], rtt_by_origin={"http://example.com": 100}
        )
        assert server["http://example.com"].min == 0


class TestThroughput:
    """Tests for estimate_throughput."""

    def test_sequential_downloads(self, make_request):
        requests = [
            make_request("a", start=0, end=1000, response_headers_end_time=0, transfer_size=1000),
            make_request("b", start=1000, end=2000, response_headers_end_time=1000, transfer_size=1000),
        ]
        assert NetworkAnalyzer.estimate_throughput(requests) == pytest.approx(1000)

    def test_overlap_not_double_counted(self, make_request):
        requests = [
            make_request("a", start=0, end=1000, response_headers_end_time=0, transfer_size=1000),
            make_request("b", start=500, end=1500, response_headers_end_time=500, transfer_size=1000),
        ]
        assert NetworkAnalyzer.estimate_throughput(requests) == pytest.approx(2000 / 1.5)

    def test_excluded_requests(self, make_request):
        requests = [
            make_request("cached", from_disk_cache=True),
            make_request("failed", failed=True),
            make_request("404", status_code=404),
            make_request("data", "data:text/plain,x"),
            make_request("empty", transfer_size=0),
        ]
        assert math.isinf(NetworkAnalyzer.estimate_throughput(requests))

    def test_sample_page(self, page_requests):
        # 190 KB over 420 ms of body download
        assert NetworkAnalyzer.estimate_throughput(page_requests) == pytest.approx(190000 / 0.42)


class TestAnalyze:
    """Tests for the full analysis."""

    def test_sample_page(self, page_requests):
        analysis = NetworkAnalyzer.analyze(page_requests)
        assert analysis.rtt == 30
        assert analysis.additional_rtt_by_origin["https://example.com"] == 0
        assert analysis.additional_rtt_by_origin["https://cdn.example.com"] == 70
        # TTFBs 99/69/99 ms minus the 30 ms origin RTT
        assert analysis.server_response_time_by_origin["https://example.com"] == 69

    def test_lookups(self, page_requests):
        assert NetworkAnalyzer.find_main_document(page_requests).request_id == "doc"
        found = NetworkAnalyzer.find_resource_for_url(page_requests, "https://example.com/app.js")
        assert found.request_id == "script"
        assert NetworkAnalyzer.find_resource_for_url(page_requests, "https://nowhere/") is None

    def test_memoized(self, page_requests):
        cache = ComputedCache()
        first = analyze_network.request(tuple(page_requests), cache=cache)
        second = analyze_network.request(tuple(page_requests), cache=cache)
        assert first is second
        assert cache.misses == 1
