"""
Base class for Lantern metrics.

A metric is estimated from two simulations of sub-graphs of the page:
- optimistic: only the work that plausibly must happen before the event
- pessimistic: everything that might have to happen before it

Neither bound is right on its own; the final timing is a calibrated blend.

IMPORTANT: Metrics never mutate the page graph. They clone it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Mapping

from lanternsim.metrics.coefficients import CoefficientTable, MetricCoefficients

if TYPE_CHECKING:
    from lanternsim.core.graph import DependencyGraph
    from lanternsim.core.simulator import SimulationResult, Simulator
    from lanternsim.metrics.navigation import NavigationContext


@dataclass(frozen=True)
class Estimate:
    """One bound of a metric and the simulation it came from."""

    time_in_ms: float
    simulation: SimulationResult


@dataclass(frozen=True)
class MetricResult:
    """Blended metric estimate with both bounds."""

    metric_name: str
    timing: float                 # ms from navigation start
    timestamp: float              # navigation.time_origin + timing
    optimistic_estimate: Estimate
    pessimistic_estimate: Estimate
    optimistic_graph: DependencyGraph
    pessimistic_graph: DependencyGraph
    coefficients: MetricCoefficients = field(default_factory=MetricCoefficients)

    def as_dict(self) -> dict[str, float]:
        return {
            "timing": self.timing,
            "timestamp": self.timestamp,
            "optimistic": self.optimistic_estimate.time_in_ms,
            "pessimistic": self.pessimistic_estimate.time_in_ms,
        }


class LanternMetric(ABC):
    """
    Base class for metrics estimated by simulation.

    Subclasses define the two sub-graphs and how to read the metric off a
    simulation. Metrics whose estimate builds on another metric list it in
    required_metrics and read its MetricResult from extras.
    """

    name: ClassVar[str]
    required_metrics: ClassVar[tuple[str, ...]] = ()

    @abstractmethod
    def get_optimistic_graph(self, graph: DependencyGraph, navigation: NavigationContext) -> DependencyGraph:
        ...

    @abstractmethod
    def get_pessimistic_graph(self, graph: DependencyGraph, navigation: NavigationContext) -> DependencyGraph:
        ...

    def get_estimate_from_simulation(
        self,
        simulation: SimulationResult,
        *,
        graph: DependencyGraph,
        navigation: NavigationContext,
        optimistic: bool,
        extras: Mapping[str, Any],
    ) -> float:
        """Metric value read off a simulation; default is total load time."""
        return simulation.time_in_ms

    def resolve_extras(
        self,
        graph: DependencyGraph,
        navigation: NavigationContext,
        simulator: Simulator,
        coefficients: CoefficientTable,
        extras: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        """Fill in required metric results that the caller did not supply."""
        return dict(extras or {})

    def adjust_result(
        self,
        result: MetricResult,
        *,
        navigation: NavigationContext,
        extras: Mapping[str, Any],
    ) -> MetricResult:
        """Final correction of the blended result (e.g. ordering constraints)."""
        return result

    def compute(
        self,
        graph: DependencyGraph,
        navigation: NavigationContext,
        simulator: Simulator,
        coefficients: CoefficientTable | MetricCoefficients | None = None,
        extras: Mapping[str, Any] | None = None,
    ) -> MetricResult:
        """
        Estimate the metric for graph under simulator's conditions.

        Args:
            graph: Full page dependency graph
            navigation: Observed navigation events
            simulator: Simulator configured for the target conditions
            coefficients: Table or coefficients for this metric (default table if None)
            extras: Results of required metrics, keyed by metric name

        Returns:
            MetricResult
        """
        table = coefficients if isinstance(coefficients, CoefficientTable) else CoefficientTable.default()
        metric_coefficients = (
            coefficients if isinstance(coefficients, MetricCoefficients) else table.get(self.name)
        )
        optimistic_graph = self.get_optimistic_graph(graph, navigation)
        pessimistic_graph = self.get_pessimistic_graph(graph, navigation)
        extras = self.resolve_extras(graph, navigation, simulator, table, extras)

        optimistic_strict = simulator.simulate(optimistic_graph, label=f"optimistic-{self.name}")
        optimistic_flexible = simulator.simulate(
            optimistic_graph, label=f"optimistic-flex-{self.name}", flexible_ordering=True
        )
        pessimistic_simulation = simulator.simulate(pessimistic_graph, label=f"pessimistic-{self.name}")

        optimistic_simulation = optimistic_strict
        if optimistic_flexible.time_in_ms < optimistic_strict.time_in_ms:
            optimistic_simulation = optimistic_flexible

        optimistic_estimate = Estimate(
            self.get_estimate_from_simulation(
                optimistic_simulation, graph=optimistic_graph, navigation=navigation,
                optimistic=True, extras=extras,
            ),
            optimistic_simulation,
        )
        pessimistic_estimate = Estimate(
            self.get_estimate_from_simulation(
                pessimistic_simulation, graph=pessimistic_graph, navigation=navigation,
                optimistic=False, extras=extras,
            ),
            pessimistic_simulation,
        )

        timing = metric_coefficients.combine(optimistic_estimate.time_in_ms, pessimistic_estimate.time_in_ms)
        result = MetricResult(
            metric_name=self.name,
            timing=timing,
            timestamp=navigation.time_origin + timing,
            optimistic_estimate=optimistic_estimate,
            pessimistic_estimate=pessimistic_estimate,
            optimistic_graph=optimistic_graph,
            pessimistic_graph=pessimistic_graph,
            coefficients=metric_coefficients,
        )
        return self.adjust_result(result, navigation=navigation, extras=extras)
