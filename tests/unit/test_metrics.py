"""Unit tests for the Lantern metrics."""

import dataclasses

import pytest

from lanternsim.core.errors import MissingTargetNodeError, NoFcpError, NoLcpError, NotAnImageError
from lanternsim.core.simulator import Simulator
from lanternsim.metrics import (
    FirstContentfulPaint,
    Interactive,
    LargestContentfulPaint,
    LCPLoadDelay,
    MetricCoefficients,
)
from lanternsim.metrics.interactive import get_last_long_task_end_time
from lanternsim.metrics.largest_contentful_paint import is_not_low_priority_image_node


def ids(graph):
    return {node.id for node in graph.nodes()}


@pytest.fixture
def simulator():
    return Simulator()


class TestFirstContentfulPaint:
    """Tests for FirstContentfulPaint."""

    def test_optimistic_graph(self, page_graph, page_navigation):
        graph = FirstContentfulPaint().get_optimistic_graph(page_graph, page_navigation)
        # Font and hero image finish after the paint
        assert ids(graph) == {"doc", "style", "script", "t-parse", "t-eval", "t-layout"}
        assert graph.get("t-eval").dependency_ids == ["script"]

    def test_pessimistic_contains_optimistic(self, page_graph, page_navigation):
        metric = FirstContentfulPaint()
        optimistic = metric.get_optimistic_graph(page_graph, page_navigation)
        pessimistic = metric.get_pessimistic_graph(page_graph, page_navigation)
        assert ids(optimistic) <= ids(pessimistic)

    def test_blend(self, page_graph, page_navigation, simulator):
        result = FirstContentfulPaint().compute(page_graph, page_navigation, simulator)
        optimistic = result.optimistic_estimate.time_in_ms
        pessimistic = result.pessimistic_estimate.time_in_ms
        assert result.timing == pytest.approx(0.5 * optimistic + 0.5 * pessimistic)
        assert result.timestamp == pytest.approx(page_navigation.time_origin + result.timing)
        assert 0 < optimistic <= pessimistic

    def test_explicit_coefficients(self, page_graph, page_navigation, simulator):
        result = FirstContentfulPaint().compute(
            page_graph, page_navigation, simulator, MetricCoefficients(0, 1.0, 0.0)
        )
        assert result.timing == pytest.approx(result.optimistic_estimate.time_in_ms)

    def test_no_fcp(self, page_graph, page_navigation, simulator):
        navigation = dataclasses.replace(page_navigation, first_contentful_paint=None)
        with pytest.raises(NoFcpError) as exc_info:
            FirstContentfulPaint().compute(page_graph, navigation, simulator)
        assert exc_info.value.metric_name == "first-contentful-paint"

    def test_page_graph_untouched(self, page_graph, page_navigation, simulator):
        before = {node.id: list(node.dependency_ids) for node in page_graph.nodes()}
        FirstContentfulPaint().compute(page_graph, page_navigation, simulator)
        assert {node.id: list(node.dependency_ids) for node in page_graph.nodes()} == before


class TestLargestContentfulPaint:
    """Tests for LargestContentfulPaint."""

    def test_low_priority_image_filter(self, page_graph):
        assert not is_not_low_priority_image_node(page_graph.get("hero"))
        assert is_not_low_priority_image_node(page_graph.get("script"))
        assert is_not_low_priority_image_node(page_graph.get("t-eval"))

    def test_graphs(self, page_graph, page_navigation):
        metric = LargestContentfulPaint()
        optimistic = metric.get_optimistic_graph(page_graph, page_navigation)
        pessimistic = metric.get_pessimistic_graph(page_graph, page_navigation)
        assert "hero" not in optimistic
        assert "hero" in pessimistic
        assert {"t-parse", "t-eval", "t-layout", "t-paint"} <= ids(pessimistic)

    def test_not_before_fcp(self, page_graph, page_navigation, simulator):
        fcp = FirstContentfulPaint().compute(page_graph, page_navigation, simulator)
        lcp = LargestContentfulPaint().compute(
            page_graph, page_navigation, simulator, extras={"first-contentful-paint": fcp}
        )
        assert lcp.timing >= fcp.timing

    def test_fcp_floor_applied(self, page_graph, page_navigation, simulator):
        fcp = FirstContentfulPaint().compute(page_graph, page_navigation, simulator)
        late_fcp = dataclasses.replace(fcp, timing=1e6)
        lcp = LargestContentfulPaint().compute(
            page_graph, page_navigation, simulator, extras={"first-contentful-paint": late_fcp}
        )
        assert lcp.timing == 1e6
        assert lcp.timestamp == page_navigation.time_origin + 1e6

    def test_computes_fcp_when_missing(self, page_graph, page_navigation, simulator):
        lcp = LargestContentfulPaint().compute(page_graph, page_navigation, simulator)
        assert lcp.timing > 0

    def test_no_lcp(self, page_graph, page_navigation, simulator):
        navigation = dataclasses.replace(page_navigation, largest_contentful_paint=None)
        with pytest.raises(NoLcpError):
            LargestContentfulPaint().compute(page_graph, navigation, simulator)


class TestLCPLoadDelay:
    """Tests for LCPLoadDelay."""

    def test_graphs(self, page_graph, page_navigation):
        metric = LCPLoadDelay()
        optimistic = metric.get_optimistic_graph(page_graph, page_navigation)
        pessimistic = metric.get_pessimistic_graph(page_graph, page_navigation)
        assert ids(optimistic) == {"doc", "style", "script", "font", "hero"}
        assert ids(pessimistic) == {"doc", "style", "script", "font", "hero", "t-parse", "t-eval", "t-layout"}

    def test_estimate_is_request_start(self, page_graph, page_navigation, simulator):
        result = LCPLoadDelay().compute(page_graph, page_navigation, simulator)
        for estimate in (result.optimistic_estimate, result.pessimistic_estimate):
            assert estimate.time_in_ms == estimate.simulation.timing_for("hero").start_time

    def test_not_an_image(self, page_graph, page_navigation, simulator):
        navigation = dataclasses.replace(page_navigation, lcp_image_url=None)
        with pytest.raises(NotAnImageError):
            LCPLoadDelay().compute(page_graph, navigation, simulator)

    def test_missing_request(self, page_graph, page_navigation, simulator):
        navigation = dataclasses.replace(page_navigation, lcp_image_url="https://nowhere.com/x.png")
        with pytest.raises(MissingTargetNodeError) as exc_info:
            LCPLoadDelay().compute(page_graph, navigation, simulator)
        assert exc_info.value.url == "https://nowhere.com/x.png"

    def test_no_lcp(self, page_graph, page_navigation):
        navigation = dataclasses.replace(page_navigation, largest_contentful_paint=None)
        with pytest.raises(NoLcpError):
            LCPLoadDelay().get_lcp_request_node(page_graph, navigation)


class TestInteractive:
    """Tests for Interactive."""

    def test_optimistic_graph(self, page_graph, page_navigation):
        graph = Interactive().get_optimistic_graph(page_graph, page_navigation)
        # Long-ish tasks, scripts and important requests; no images
        assert ids(graph) == {"doc", "style", "script", "font", "t-eval"}

    def test_pessimistic_is_whole_page(self, page_graph, page_navigation):
        graph = Interactive().get_pessimistic_graph(page_graph, page_navigation)
        assert ids(graph) == ids(page_graph)
        assert graph is not page_graph

    def test_not_before_lcp(self, page_graph, page_navigation, simulator):
        lcp = LargestContentfulPaint().compute(page_graph, page_navigation, simulator)
        tti = Interactive().compute(
            page_graph, page_navigation, simulator, extras={"largest-contentful-paint": lcp}
        )
        assert tti.optimistic_estimate.time_in_ms >= lcp.optimistic_estimate.time_in_ms
        assert tti.pessimistic_estimate.time_in_ms >= lcp.pessimistic_estimate.time_in_ms
        assert tti.timing == pytest.approx(
            0.45 * tti.optimistic_estimate.time_in_ms + 0.55 * tti.pessimistic_estimate.time_in_ms
        )

    def test_last_long_task(self, page_graph, simulator):
        result = simulator.simulate(page_graph)
        # t-parse (20 ms x4) is long too, but t-eval (70 ms x4) ends later
        assert get_last_long_task_end_time(result, page_graph) == result.timing_for("t-eval").end_time
        assert get_last_long_task_end_time(result, page_graph, duration=1e6) == 0
