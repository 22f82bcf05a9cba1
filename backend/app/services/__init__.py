"""Services package."""

from backend.app.services.status_coordinator import StatusUpdateCoordinator, EvaluationResult
from backend.app.services.status_sweep import StatusSweepService, SweepSummary
from backend.app.services.threshold_calculator import ThresholdCalculator, Thresholds

__all__ = [
    "StatusUpdateCoordinator",
    "EvaluationResult",
    "StatusSweepService",
    "SweepSummary",
    "ThresholdCalculator",
    "Thresholds",
]
