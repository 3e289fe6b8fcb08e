"""
Calibration coefficients that blend optimistic and pessimistic estimates.

The values are empirical: they are fit against real throttled loads (see
lanternsim.analysis.calibration) and shipped as a JSON table so they can be
replaced without touching code.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Mapping

from lanternsim.core.errors import MetricError


@dataclass(frozen=True)
class MetricCoefficients:
    intercept: float = 0.0
    optimistic: float = 0.5
    pessimistic: float = 0.5
    scale_intercept: bool = False  # Shrink a positive intercept for sub-second pages

    def combine(self, optimistic: float, pessimistic: float) -> float:
        """
        Blend two estimates: intercept + a * optimistic + b * pessimistic.

        With scale_intercept, a positive intercept is multiplied by
        min(1, optimistic / 1000) so that tiny pages are not padded.
        """
        intercept_multiplier = 1.0
        if self.scale_intercept and self.intercept > 0:
            intercept_multiplier = min(1.0, optimistic / 1000)
        return (
            intercept_multiplier * self.intercept
            + self.optimistic * optimistic
            + self.pessimistic * pessimistic
        )

    def to_dict(self) -> dict[str, float]:
        data = {"intercept": self.intercept, "optimistic": self.optimistic, "pessimistic": self.pessimistic}
        if self.scale_intercept:
            data["scale_intercept"] = True
        return data


@dataclass(frozen=True)
class CoefficientTable:
    """Metric name -> coefficients."""

    coefficients: Mapping[str, MetricCoefficients]

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Any]]) -> CoefficientTable:
        return cls({
            name: MetricCoefficients(
                intercept=float(values.get("intercept", 0.0)),
                optimistic=float(values["optimistic"]),
                pessimistic=float(values["pessimistic"]),
                scale_intercept=bool(values.get("scale_intercept", False)),
            )
            for name, values in data.items()
        })

    @classmethod
    def from_json(cls, path: str | Path) -> CoefficientTable:
        with open(path) as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def default(cls) -> CoefficientTable:
        text = resources.files("lanternsim.metrics").joinpath("coefficients.json").read_text()
        return cls.from_dict(json.loads(text))

    def get(self, name: str) -> MetricCoefficients:
        try:
            return self.coefficients[name]
        except KeyError:
            raise MetricError(f"No coefficients for metric {name!r}", metric_name=name) from None

    def to_dict(self) -> dict[str, dict[str, float]]:
        return {name: c.to_dict() for name, c in self.coefficients.items()}
