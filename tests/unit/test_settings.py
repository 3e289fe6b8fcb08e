"""Unit tests for throttling settings and simulator creation."""

import math

import pytest

from lanternsim.core.cache import ComputedCache
from lanternsim.core.errors import ResourceLimitConfigError
from lanternsim.core.network_analyzer import SUMMARY, NetworkAnalysis
from lanternsim.core.records import NetworkRequest, ResourceTiming
from lanternsim.core.settings import (
    MINIMUM_OBSERVED_RTT_MS,
    PrecomputedLanternData,
    ThrottlingSettings,
    create_simulator,
    kbps_to_bytes_per_second,
    load_simulator,
)
from lanternsim.metrics import NavigationContext, compute_metrics


@pytest.fixture
def analysis():
    return NetworkAnalysis(
        rtt=30.0,
        throughput=1e6,
        additional_rtt_by_origin={"https://a.com": 10.0, SUMMARY: 0.0},
        server_response_time_by_origin={"https://a.com": 55.0, SUMMARY: 55.0},
    )


class TestThrottlingSettings:
    """Tests for ThrottlingSettings."""

    def test_defaults_are_mobile_slow_4g(self):
        settings = ThrottlingSettings()
        assert settings.throttling_method == "simulate"
        assert settings.rtt_ms == 150
        assert settings.throughput_kbps == 1638.4
        assert settings.cpu_slowdown_multiplier == 4

    def test_unknown_method(self):
        with pytest.raises(ResourceLimitConfigError) as exc_info:
            ThrottlingSettings(throttling_method="magic")
        assert exc_info.value.field == "throttling_method"

    def test_from_dict(self):
        settings = ThrottlingSettings.from_dict({
            "throttling_method": "devtools",
            "request_latency_ms": 300,
            "precomputed_lantern_data": {
                "additional_rtt_by_origin": {"https://a.com": 5},
                "server_response_time_by_origin": {"https://a.com": 7},
            },
            "unrelated": 1,
        })
        assert settings.throttling_method == "devtools"
        assert settings.request_latency_ms == 300
        assert settings.precomputed_lantern_data.additional_rtt_by_origin == {"https://a.com": 5}

    def test_kbps_conversion(self):
        assert kbps_to_bytes_per_second(8) == 1024


class TestCreateSimulator:
    """Tests for create_simulator."""

    def test_simulate(self, analysis):
        simulator = create_simulator(ThrottlingSettings(), analysis)
        assert simulator.rtt == 150
        assert simulator.throughput == pytest.approx(1638.4 * 1024 / 8)
        assert simulator.config.cpu_slowdown_multiplier == 4
        assert simulator.config.additional_rtt_by_origin["https://a.com"] == 10
        assert simulator.config.server_response_time_by_origin["https://a.com"] == 55

    def test_provided(self, analysis):
        simulator = create_simulator(ThrottlingSettings(throttling_method="provided"), analysis)
        assert simulator.rtt == 30
        assert simulator.throughput == 1e6
        assert simulator.config.cpu_slowdown_multiplier == 1

    def test_devtools(self, analysis):
        simulator = create_simulator(ThrottlingSettings(throttling_method="devtools"), analysis)
        assert simulator.rtt == pytest.approx(562.5 / 3.75)
        assert simulator.throughput == pytest.approx(1474.56 * 1024 / 8 / 0.9)
        assert simulator.config.cpu_slowdown_multiplier == 1

    def test_precomputed_data_wins(self, analysis):
        settings = ThrottlingSettings(precomputed_lantern_data=PrecomputedLanternData(
            additional_rtt_by_origin={"https://b.com": 99.0},
            server_response_time_by_origin={"https://b.com": 1.0},
        ))
        simulator = create_simulator(settings, analysis)
        assert simulator.config.additional_rtt_by_origin == {"https://b.com": 99.0}
        assert simulator.config.server_response_time_by_origin == {"https://b.com": 1.0}

    def test_config_overrides(self, analysis):
        simulator = create_simulator(
            ThrottlingSettings(), analysis, config_overrides={"max_connections_per_origin": 2}
        )
        assert simulator.config.max_connections_per_origin == 2

    def test_provided_unlimited_throughput(self):
        analysis = NetworkAnalysis(rtt=30.0, throughput=float("inf"))
        simulator = create_simulator(ThrottlingSettings(throttling_method="provided"), analysis)
        assert math.isinf(simulator.throughput)
        assert simulator.config.effective_max_concurrent_requests == simulator.config.max_concurrent_requests

    def test_provided_zero_rtt_floored(self):
        analysis = NetworkAnalysis(rtt=0.0, throughput=1e6)
        simulator = create_simulator(ThrottlingSettings(throttling_method="provided"), analysis)
        assert simulator.rtt == MINIMUM_OBSERVED_RTT_MS

    @pytest.mark.parametrize("method", ["provided", "devtools"])
    def test_observed_conditions_keep_layout_duration(self, analysis, page_graph, method):
        simulator = create_simulator(ThrottlingSettings(throttling_method=method), analysis)
        assert simulator.config.layout_task_multiplier == 1
        result = simulator.simulate(page_graph)
        assert result.timing_for("t-layout").duration == pytest.approx(10)

    def test_simulate_halves_layout_on_top_of_cpu_slowdown(self, analysis, page_graph):
        result = create_simulator(ThrottlingSettings(), analysis).simulate(page_graph)
        assert result.timing_for("t-layout").duration == pytest.approx(10 * 4 * 0.5)

    def test_memoized(self, analysis):
        cache = ComputedCache()
        first = load_simulator.request(ThrottlingSettings(), analysis, cache=cache)
        second = load_simulator.request(ThrottlingSettings(), analysis, cache=cache)
        assert first is second
        other = load_simulator.request(ThrottlingSettings(rtt_ms=40), analysis, cache=cache)
        assert other is not first
        assert other.rtt == 40


class TestObservedLoads:
    """Estimating metrics under the observed network conditions."""

    def test_zero_length_download_gives_unlimited_throughput(self):
        doc = NetworkRequest(
            request_id="doc", url="https://example.com/", start_time=0, end_time=300,
            response_headers_end_time=300, resource_type="Document", transfer_size=20000,
            connection_id="1", is_main_document=True,
            timing=ResourceTiming(connect_start=0, connect_end=100, ssl_start=50, ssl_end=100,
                                  send_start=100, send_end=101, receive_headers_end=300),
        )
        outcomes = compute_metrics(
            [doc], [], NavigationContext(first_contentful_paint=300),
            ThrottlingSettings(throttling_method="provided"),
            metrics=["first-contentful-paint"],
        )
        outcome = outcomes["first-contentful-paint"]
        assert outcome.ok
        assert math.isfinite(outcome.result.timing)
        assert outcome.result.timing > 0
