"""
Navigation context: the observed events a metric is anchored on.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping


@dataclass(frozen=True)
class NavigationContext:
    """
    Observed timestamps of one navigation (ms, same clock as the records).

    lcp_image_url is None when the largest contentful element was text.
    """

    time_origin: float = 0.0
    first_contentful_paint: float | None = None
    largest_contentful_paint: float | None = None
    lcp_image_url: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NavigationContext:
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in names})
