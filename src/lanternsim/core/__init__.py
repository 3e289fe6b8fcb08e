"""
Core engine primitives.

- records: observed requests and main-thread tasks
- graph / graph_builder: the page dependency graph
- network_analyzer: per-origin RTT, server latency, throughput
- tcp_connection / connection_pool / dns_cache: network resource model
- simulator: discrete-event replay under throttled conditions
- settings: throttling settings -> simulator
- cache: memoization of derived artifacts
"""

from lanternsim.core.cache import ComputedCache, cache_key, computed_artifact
from lanternsim.core.connection_pool import ConnectionPool
from lanternsim.core.dns_cache import DNSCache
from lanternsim.core.errors import (
    GraphConstructionError,
    GraphError,
    LanternError,
    MetricError,
    MissingTargetNodeError,
    NoFcpError,
    NoLcpError,
    NoTargetEventError,
    NoTimingInformationError,
    NotAnImageError,
    ResourceLimitConfigError,
    UnschedulableGraphError,
)
from lanternsim.core.graph import CpuNode, DependencyGraph, NetworkNode, NodeType
from lanternsim.core.graph_builder import build_page_graph, page_graph
from lanternsim.core.network_analyzer import (
    SUMMARY,
    NetworkAnalysis,
    NetworkAnalyzer,
    OriginSummary,
    analyze_network,
)
from lanternsim.core.records import CpuTask, Initiator, NetworkRequest, ResourceTiming
from lanternsim.core.settings import (
    PrecomputedLanternData,
    ThrottlingSettings,
    create_simulator,
    load_simulator,
)
from lanternsim.core.simulator import (
    NodeState,
    NodeTiming,
    SimulationResult,
    Simulator,
    SimulatorConfig,
)
from lanternsim.core.tcp_connection import ConnectionTiming, DownloadResult, TcpConnection

__all__ = [
    "ComputedCache",
    "cache_key",
    "computed_artifact",
    "ConnectionPool",
    "DNSCache",
    "GraphConstructionError",
    "GraphError",
    "LanternError",
    "MetricError",
    "MissingTargetNodeError",
    "NoFcpError",
    "NoLcpError",
    "NoTargetEventError",
    "NoTimingInformationError",
    "NotAnImageError",
    "ResourceLimitConfigError",
    "UnschedulableGraphError",
    "CpuNode",
    "DependencyGraph",
    "NetworkNode",
    "NodeType",
    "build_page_graph",
    "page_graph",
    "SUMMARY",
    "NetworkAnalysis",
    "NetworkAnalyzer",
    "OriginSummary",
    "analyze_network",
    "CpuTask",
    "Initiator",
    "NetworkRequest",
    "ResourceTiming",
    "PrecomputedLanternData",
    "ThrottlingSettings",
    "create_simulator",
    "load_simulator",
    "NodeState",
    "NodeTiming",
    "SimulationResult",
    "Simulator",
    "SimulatorConfig",
    "ConnectionTiming",
    "DownloadResult",
    "TcpConnection",
]
