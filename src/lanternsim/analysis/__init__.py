"""
Analysis layer: derived quantities for reports, visualization and calibration.

IMPORTANT: This is NOT seen by the simulator. One-way derivation only.

- concurrency_profile / critical_path / summarize_timeline: read a simulation
- compare_simulated_vs_observed: validate the model against the trace
- fit_coefficients / evaluate_coefficients: calibrate metric blends
"""

from lanternsim.analysis.calibration import (
    CalibrationResult,
    ErrorSummary,
    evaluate_coefficients,
    fit_coefficients,
    load_golden_expectations,
)
from lanternsim.analysis.comparison import (
    ComparisonResult,
    compare_simulated_vs_observed,
    normalize_series,
)
from lanternsim.analysis.timeline import (
    ConcurrencyProfile,
    concurrency_profile,
    critical_path,
    summarize_timeline,
)

__all__ = [
    "CalibrationResult",
    "ErrorSummary",
    "evaluate_coefficients",
    "fit_coefficients",
    "load_golden_expectations",
    "ComparisonResult",
    "compare_simulated_vs_observed",
    "normalize_series",
    "ConcurrencyProfile",
    "concurrency_profile",
    "critical_path",
    "summarize_timeline",
]
