"""
Adaptive at-risk / lost thresholds from a customer's payment history.

The "average" is a running average that halves the weight of older intervals
on every new payment:

    avg = interval(p0, p1)
    avg = (avg + interval(p[i-1], p[i])) / 2   for i >= 2

so recent visit cadence dominates. Thresholds are recomputed on every
evaluation; nothing is cached.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

SECONDS_PER_DAY = 24 * 60 * 60


def as_utc(value: datetime) -> datetime:
    """Normalise a datetime to aware UTC (SQLite hands back naive values)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days between two instants, rounded up. Order-insensitive."""
    seconds = abs((as_utc(later) - as_utc(earlier)).total_seconds())
    return math.ceil(seconds / SECONDS_PER_DAY)


def days_since(occurred_at: datetime, now: datetime) -> int:
    """Whole days elapsed from `occurred_at` to `now`; never negative."""
    if as_utc(occurred_at) >= as_utc(now):
        return 0
    return days_between(occurred_at, now)


@dataclass(frozen=True)
class Thresholds:
    at_risk_days: float
    lost_days: float
    # None when fewer than two payments exist (defaults in use)
    average_interval_days: Optional[float] = None

    @property
    def uses_defaults(self) -> bool:
        return self.average_interval_days is None


class ThresholdCalculator:
    """Converts ordered payment timestamps into (at_risk, lost) day thresholds."""

    def __init__(self, at_risk_default_days: float = 30, lost_default_days: float = 60):
        if at_risk_default_days <= 0 or lost_default_days <= 0:
            raise ValueError("Default thresholds must be positive")
        if lost_default_days < at_risk_default_days:
            raise ValueError("Lost default must not be shorter than the at-risk default")
        self.at_risk_default_days = at_risk_default_days
        self.lost_default_days = lost_default_days

    @staticmethod
    def running_average_interval(payment_dates: Sequence[datetime]) -> Optional[float]:
        """Smoothed interval in days, or None with fewer than two payments."""
        if len(payment_dates) < 2:
            return None

        ordered = sorted(as_utc(d) for d in payment_dates)
        avg: float = days_between(ordered[0], ordered[1])
        for i in range(2, len(ordered)):
            avg = (avg + days_between(ordered[i - 1], ordered[i])) / 2
        return avg

    def calculate(self, payment_dates: Sequence[datetime]) -> Thresholds:
        avg = self.running_average_interval(payment_dates)

        # Same-day repeat payments give a zero cadence, which would flag every
        # customer at risk immediately; fall back to defaults instead.
        if avg is None or avg <= 0:
            return Thresholds(
                at_risk_days=self.at_risk_default_days,
                lost_days=self.lost_default_days,
                average_interval_days=None,
            )

        return Thresholds(
            at_risk_days=avg,
            lost_days=max(avg * 2, self.lost_default_days),
            average_interval_days=avg,
        )
