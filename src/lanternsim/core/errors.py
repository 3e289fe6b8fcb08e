"""
Error taxonomy for graph construction, simulation and metric estimation.

Every error carries the structured context a caller needs to build a
diagnostic message (node id, origin, metric name, config field).
"""

from __future__ import annotations


class LanternError(Exception):
    """Base class for all errors raised by lanternsim."""


class GraphError(LanternError):
    """Malformed dependency graph, or a clone that loses its root/target."""

    def __init__(self, message: str, node_id: str | None = None):
        super().__init__(message)
        self.node_id = node_id


class GraphConstructionError(GraphError):
    """The dependency graph could not be built from the input records."""


class UnschedulableGraphError(GraphError):
    """The simulator could not make progress on a graph.

    Raised for cycles found at simulation time and for nodes that never
    become ready. Indicates a malformed graph or a bug; never retried.
    """


class ResourceLimitConfigError(LanternError, ValueError):
    """Invalid simulator or settings configuration."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NoTimingInformationError(LanternError):
    """No request carried usable timing data for any origin."""


class MetricError(LanternError):
    """Base class for failures specific to one metric."""

    def __init__(self, message: str, metric_name: str | None = None):
        super().__init__(message)
        self.metric_name = metric_name


class NoTargetEventError(MetricError):
    """The event a metric is anchored on never happened in the trace."""


class NoFcpError(NoTargetEventError):
    pass


class NoLcpError(NoTargetEventError):
    pass


class NotAnImageError(MetricError):
    """The largest contentful element was text, not an image."""


class MissingTargetNodeError(MetricError):
    """The request a metric targets is not part of the dependency graph."""

    def __init__(self, message: str, metric_name: str | None = None, url: str | None = None):
        super().__init__(message, metric_name=metric_name)
        self.url = url
