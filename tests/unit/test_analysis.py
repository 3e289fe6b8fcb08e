"""Unit tests for the analysis layer."""

import json
import math

import numpy as np
import pytest

from lanternsim.analysis.calibration import evaluate_coefficients, fit_coefficients, load_golden_expectations
from lanternsim.analysis.comparison import compare_simulated_vs_observed, normalize_series
from lanternsim.analysis.timeline import concurrency_profile, critical_path, summarize_timeline
from lanternsim.core.errors import GraphError
from lanternsim.core.graph import NodeType
from lanternsim.core.settings import ThrottlingSettings, create_simulator
from lanternsim.core.network_analyzer import NetworkAnalyzer
from lanternsim.core.simulator import Simulator
from lanternsim.metrics.coefficients import MetricCoefficients


@pytest.fixture
def page_result(page_graph):
    return Simulator().simulate(page_graph, label="page")


class TestConcurrencyProfile:
    """Tests for concurrency_profile."""

    def test_cpu_lane_is_serial(self, page_graph, page_result):
        profile = concurrency_profile(page_result, page_graph, node_type=NodeType.CPU)
        assert profile.max_concurrency == 1

    def test_counts_return_to_zero(self, page_graph, page_result):
        profile = concurrency_profile(page_result, page_graph)
        assert profile.counts[-1] == 0
        assert np.all(np.diff(profile.times) >= 0)

    def test_empty_selection(self, page_graph, page_result):
        profile = concurrency_profile(page_result, page_graph, origin="https://nowhere.com")
        assert profile.max_concurrency == 0
        assert profile.times.size == 0


class TestCriticalPath:
    """Tests for critical_path."""

    def test_ends_at_last_node(self, page_graph, page_result):
        path = critical_path(page_graph, page_result)
        last = max(page_result.node_timings, key=lambda n: page_result.node_timings[n].end_time)
        assert path[0] == "doc"
        assert path[-1] == last

    def test_explicit_target(self, page_graph, page_result):
        path = critical_path(page_graph, page_result, target_id="hero")
        assert path[0] == "doc"
        assert path[-1] == "hero"
        assert path[-2] in ("script", "t-eval")

    def test_unsimulated_target(self, page_graph, page_result):
        with pytest.raises(GraphError):
            critical_path(page_graph, page_result, target_id="t-tiny")


class TestSummarizeTimeline:
    """Tests for summarize_timeline."""

    def test_summary(self, page_graph, page_result):
        summary = summarize_timeline(page_graph, page_result)
        assert summary["label"] == "page"
        assert summary["total_time_ms"] == page_result.time_in_ms
        assert summary["network_nodes"] == 5
        assert summary["cpu_nodes"] == 4
        assert summary["max_cpu_concurrency"] == 1
        assert summary["critical_path_length"] >= 2


class TestComparison:
    """Tests for compare_simulated_vs_observed."""

    def test_normalize_series(self):
        assert np.allclose(normalize_series(np.array([2.0, 4.0, 6.0])), [0.0, 0.5, 1.0])
        assert np.all(normalize_series(np.array([3.0, 3.0])) == 0)

    def test_provided_throttling_tracks_observed(self, page_requests, page_graph):
        analysis = NetworkAnalyzer.analyze(page_requests)
        simulator = create_simulator(ThrottlingSettings(throttling_method="provided"), analysis)
        result = simulator.simulate(page_graph)

        comparison = compare_simulated_vs_observed(page_graph, result)
        assert len(comparison.node_ids) == len(page_graph)
        assert comparison.observed.shape == comparison.simulated.shape
        assert comparison.correlation > 0
        assert comparison.max_error >= comparison.rmse >= 0

    def test_single_node_has_no_correlation(self, make_request):
        from lanternsim.core.graph import DependencyGraph, NetworkNode

        graph = DependencyGraph()
        graph.add_node(NetworkNode(make_request("doc")))
        comparison = compare_simulated_vs_observed(graph, Simulator().simulate(graph))
        assert math.isnan(comparison.correlation)


class TestCalibration:
    """Tests for coefficient fitting and evaluation."""

    @pytest.fixture
    def sites(self):
        optimistic = np.array([800.0, 1200.0, 2000.0, 3100.0, 4500.0, 900.0])
        pessimistic = np.array([1500.0, 1900.0, 3800.0, 4000.0, 7000.0, 2500.0])
        observed = 100 + 0.3 * optimistic + 0.6 * pessimistic
        return optimistic, pessimistic, observed

    def test_recovers_coefficients(self, sites):
        result = fit_coefficients(*sites)
        assert result.coefficients.intercept == pytest.approx(100, abs=1e-3)
        assert result.coefficients.optimistic == pytest.approx(0.3, abs=1e-6)
        assert result.coefficients.pessimistic == pytest.approx(0.6, abs=1e-6)
        assert result.r_squared == pytest.approx(1.0)
        assert result.correlation == pytest.approx(1.0)
        assert result.rmse == pytest.approx(0.0, abs=1e-3)

    def test_without_intercept(self, sites):
        optimistic, pessimistic, _ = sites
        observed = 0.5 * optimistic + 0.5 * pessimistic
        result = fit_coefficients(optimistic, pessimistic, observed, fit_intercept=False)
        assert result.coefficients.intercept == 0
        assert result.coefficients.optimistic == pytest.approx(0.5, abs=1e-6)

    def test_weights_non_negative(self, sites):
        optimistic, pessimistic, _ = sites
        # Observed falls as the optimistic estimate grows
        observed = 5000 - optimistic
        result = fit_coefficients(optimistic, pessimistic, observed)
        assert result.coefficients.optimistic >= 0
        assert result.coefficients.pessimistic >= 0

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError):
            fit_coefficients([1, 2], [1, 2, 3], [1, 2])

    def test_evaluate(self, sites):
        optimistic, pessimistic, _ = sites
        observed = 0.5 * optimistic + 0.5 * pessimistic
        perfect = evaluate_coefficients(MetricCoefficients(0, 0.5, 0.5), optimistic, pessimistic, observed)
        assert perfect.p50 == pytest.approx(0)
        assert perfect.n_sites == 6

        biased = evaluate_coefficients(MetricCoefficients(0, 0.55, 0.55), optimistic, pessimistic, observed)
        assert biased.p50 == pytest.approx(10)
        assert biased.p95 == pytest.approx(10)

    def test_evaluate_skips_non_positive(self):
        summary = evaluate_coefficients(MetricCoefficients(0, 1, 0), [100, 100], [100, 100], [0, 100])
        assert summary.n_sites == 1

    def test_load_golden_expectations(self, tmp_path):
        path = tmp_path / "golden.json"
        path.write_text(json.dumps({"sites": [
            {"url": "https://a.com/", "wpt3g": {"firstContentfulPaint": 1200, "timeToConsistentlyInteractive": 5000}},
            {"url": "https://b.com/", "wpt3g": {"timeToConsistentlyInteractive": 7000}},
        ]}))
        assert load_golden_expectations(path, "first-contentful-paint") == {"https://a.com/": 1200.0}
        assert load_golden_expectations(path, "interactive") == {"https://a.com/": 5000.0, "https://b.com/": 7000.0}
