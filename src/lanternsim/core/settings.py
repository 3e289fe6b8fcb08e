"""
Throttling settings and the simulator they describe.

Three throttling methods decide where the simulated conditions come from:
- simulate: the configured (throttled) rtt/throughput/CPU slowdown
- provided: the conditions observed in the trace, CPU and layout x1
- devtools: the devtools request latency/download throughput, corrected
  for how devtools applies them, CPU and layout x1

In every case the per-origin RTT offsets and server latencies come from
the observed network analysis, unless precomputed data overrides them.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from lanternsim.core.cache import computed_artifact
from lanternsim.core.errors import ResourceLimitConfigError
from lanternsim.core.network_analyzer import NetworkAnalysis
from lanternsim.core.simulator import DEFAULT_LAYOUT_TASK_MULTIPLIER, Simulator, SimulatorConfig

logger = logging.getLogger(__name__)


THROTTLING_METHODS = ("simulate", "provided", "devtools")

# Devtools throttling adds latency per request rather than per round trip
DEVTOOLS_RTT_ADJUSTMENT_FACTOR = 3.75
DEVTOOLS_THROUGHPUT_ADJUSTMENT_FACTOR = 0.9
# A trace can report a 0 ms connect phase; the simulator needs a positive RTT
MINIMUM_OBSERVED_RTT_MS = 1.0


@dataclass(frozen=True)
class PrecomputedLanternData:
    """Origin maps that replace the ones derived from the trace."""

    additional_rtt_by_origin: Mapping[str, float]
    server_response_time_by_origin: Mapping[str, float]


@dataclass(frozen=True)
class ThrottlingSettings:
    """Run settings relevant to simulation. Defaults are mobile slow 4G."""

    throttling_method: str = "simulate"
    rtt_ms: float = 150.0                       # simulate: round trip time
    throughput_kbps: float = 1638.4             # simulate: bandwidth
    cpu_slowdown_multiplier: float = 4.0        # simulate: main-thread slowdown
    request_latency_ms: float = 562.5           # devtools: added request latency
    download_throughput_kbps: float = 1474.56   # devtools: download bandwidth
    precomputed_lantern_data: PrecomputedLanternData | None = None

    def __post_init__(self):
        if self.throttling_method not in THROTTLING_METHODS:
            raise ResourceLimitConfigError(
                f"Unknown throttling method {self.throttling_method!r}", field="throttling_method"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ThrottlingSettings:
        names = {f.name for f in dataclasses.fields(cls)}
        values = {key: value for key, value in data.items() if key in names}
        precomputed = values.get("precomputed_lantern_data")
        if isinstance(precomputed, Mapping):
            values["precomputed_lantern_data"] = PrecomputedLanternData(
                additional_rtt_by_origin=dict(precomputed["additional_rtt_by_origin"]),
                server_response_time_by_origin=dict(precomputed["server_response_time_by_origin"]),
            )
        return cls(**values)


def kbps_to_bytes_per_second(kbps: float) -> float:
    return kbps * 1024 / 8


def create_simulator(
    settings: ThrottlingSettings,
    network_analysis: NetworkAnalysis,
    config_overrides: Mapping[str, Any] | None = None,
) -> Simulator:
    """
    Build the simulator for settings, calibrated by network_analysis.

    Args:
        settings: Throttling settings of the run
        network_analysis: Observed network characteristics
        config_overrides: Extra SimulatorConfig fields (e.g. connection limits)
    """
    method = settings.throttling_method
    if method == "provided":
        rtt = max(network_analysis.rtt, MINIMUM_OBSERVED_RTT_MS)
        throughput = network_analysis.throughput
        cpu_slowdown_multiplier = 1.0
        layout_task_multiplier = 1.0
    elif method == "devtools":
        rtt = settings.request_latency_ms / DEVTOOLS_RTT_ADJUSTMENT_FACTOR
        throughput = (
            kbps_to_bytes_per_second(settings.download_throughput_kbps)
            / DEVTOOLS_THROUGHPUT_ADJUSTMENT_FACTOR
        )
        cpu_slowdown_multiplier = 1.0
        layout_task_multiplier = 1.0
    elif method == "simulate":
        rtt = settings.rtt_ms
        throughput = kbps_to_bytes_per_second(settings.throughput_kbps)
        cpu_slowdown_multiplier = settings.cpu_slowdown_multiplier
        layout_task_multiplier = DEFAULT_LAYOUT_TASK_MULTIPLIER
    else:
        raise ResourceLimitConfigError(f"Unknown throttling method {method!r}", field="throttling_method")

    precomputed = settings.precomputed_lantern_data
    if precomputed is not None:
        additional_rtt_by_origin = dict(precomputed.additional_rtt_by_origin)
        server_response_time_by_origin = dict(precomputed.server_response_time_by_origin)
    else:
        additional_rtt_by_origin = dict(network_analysis.additional_rtt_by_origin)
        server_response_time_by_origin = dict(network_analysis.server_response_time_by_origin)

    options = dict(
        rtt=rtt,
        throughput=throughput,
        cpu_slowdown_multiplier=cpu_slowdown_multiplier,
        layout_task_multiplier=layout_task_multiplier,
        additional_rtt_by_origin=additional_rtt_by_origin,
        server_response_time_by_origin=server_response_time_by_origin,
    )
    options.update(config_overrides or {})
    logger.debug("Creating %s simulator: rtt=%.1f ms throughput=%.0f B/s cpu=x%.1f",
                 method, options["rtt"], options["throughput"], options["cpu_slowdown_multiplier"])
    return Simulator(SimulatorConfig(**options))


@computed_artifact("load-simulator")
def load_simulator(settings: ThrottlingSettings, network_analysis: NetworkAnalysis) -> Simulator:
    """Memoizable entry point; use load_simulator.request(settings, analysis, cache=...)."""
    return create_simulator(settings, network_analysis)
