"""
Records: the normalized observations a page load is rebuilt from.

An external collaborator turns a browser trace into two flat lists:
- NetworkRequest: one per fetched resource, with its observed timing
- CpuTask: one per significant main-thread task

Everything downstream (graph, analyzer, simulator, metrics) only reads
these. Records are frozen so they hash by content, which is what makes
them usable as cache keys.

All times are milliseconds on the observed clock. ResourceTiming fields
are relative to the request's own start and use -1 for "not available".
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Mapping
from urllib.parse import urlsplit


# Request priority ranks (lower rank = scheduled earlier)
PRIORITY_RANK = {
    "VeryHigh": 0,
    "High": 1,
    "Medium": 2,
    "Low": 3,
    "VeryLow": 4,
}

NON_NETWORK_SCHEMES = frozenset({"data", "blob", "about", "chrome", "chrome-extension", "file"})

SECURE_SCHEMES = frozenset({"https", "wss"})


@dataclass(frozen=True)
class ResourceTiming:
    """Connection phase timing for a single request (ms, -1 = unavailable)."""

    request_time: float = 0.0     # Absolute start, the other fields are offsets from it
    dns_start: float = -1.0
    dns_end: float = -1.0
    connect_start: float = -1.0   # TCP connect (includes TLS when ssl_start is set)
    connect_end: float = -1.0
    ssl_start: float = -1.0
    ssl_end: float = -1.0
    send_start: float = -1.0
    send_end: float = -1.0
    receive_headers_end: float = -1.0  # Time to first byte of the response

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ResourceTiming:
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class Initiator:
    """What caused a request to be issued."""

    type: str = "other"  # "parser" | "script" | "preload" | "other"
    url: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Initiator:
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class NetworkRequest:
    """
    One observed network request.

    Redirects are a chain of requests linked by id: the request that was
    redirected points at its successor through redirect_destination_id
    and the successor points back through redirect_source_id.
    """

    request_id: str
    url: str
    start_time: float = 0.0
    end_time: float = 0.0
    response_headers_end_time: float | None = None  # None = derive from timing
    priority: str = "Medium"
    resource_type: str = "Other"
    transfer_size: int = 0        # Bytes on the wire
    resource_size: int = 0        # Decoded body bytes
    timing: ResourceTiming | None = None
    protocol: str = "http/1.1"
    connection_id: str = ""
    connection_reused: bool = False
    status_code: int = 200
    from_disk_cache: bool = False
    finished: bool = True
    failed: bool = False
    initiator: Initiator = field(default_factory=Initiator)
    redirect_source_id: str | None = None
    redirect_destination_id: str | None = None
    frame_id: str | None = None
    is_main_document: bool = False

    def __post_init__(self):
        if self.priority not in PRIORITY_RANK:
            raise ValueError(f"Unknown priority {self.priority!r} for request {self.request_id}")

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme

    @property
    def host(self) -> str:
        return urlsplit(self.url).hostname or ""

    @property
    def origin(self) -> str:
        """Security origin, scheme://host[:port]."""
        parts = urlsplit(self.url)
        if not parts.netloc:
            return f"{parts.scheme}:"
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def is_secure(self) -> bool:
        return self.scheme in SECURE_SCHEMES

    @property
    def is_non_network_protocol(self) -> bool:
        return self.scheme in NON_NETWORK_SCHEMES

    @property
    def priority_rank(self) -> int:
        return PRIORITY_RANK[self.priority]

    @property
    def headers_end_time(self) -> float:
        """Observed time the response headers arrived."""
        if self.response_headers_end_time is not None:
            return self.response_headers_end_time
        if self.timing is not None and self.timing.receive_headers_end >= 0:
            return self.start_time + self.timing.receive_headers_end
        return self.start_time

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NetworkRequest:
        """Build a request from a JSON-style dict (snake_case keys)."""
        values = _known_fields(cls, data)
        if isinstance(values.get("timing"), Mapping):
            values["timing"] = ResourceTiming.from_dict(values["timing"])
        if isinstance(values.get("initiator"), Mapping):
            values["initiator"] = Initiator.from_dict(values["initiator"])
        return cls(**values)


@dataclass(frozen=True)
class CpuTask:
    """A top-level main-thread task."""

    task_id: str
    start_time: float
    end_time: float
    group: str = "other"  # "script_evaluation" | "parse_html" | "style_layout" | "paint" | "other"
    attributable_urls: tuple[str, ...] = ()
    initiated_request_ids: tuple[str, ...] = ()  # Requests issued from inside the task
    did_perform_layout: bool = False
    did_paint: bool = False

    def __post_init__(self):
        if self.end_time < self.start_time:
            raise ValueError(f"Task {self.task_id} ends before it starts")
        # Lists from JSON are coerced so the record stays hashable
        object.__setattr__(self, "attributable_urls", tuple(self.attributable_urls))
        object.__setattr__(self, "initiated_request_ids", tuple(self.initiated_request_ids))

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def did_parse_html(self) -> bool:
        return self.group == "parse_html"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CpuTask:
        return cls(**_known_fields(cls, data))


def _known_fields(cls, data: Mapping[str, Any]) -> dict[str, Any]:
    """Keep only keys that are dataclass fields of cls."""
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in data.items() if key in names}
