"""
Customer status transition table.

Pure function: (current status, days since last activity, thresholds) -> next status.

Decline always passes through AT_RISK: a relationship that is ACTIVE or
RECOVERED goes to AT_RISK even when the elapsed time already exceeds the lost
threshold, and only an evaluation that finds it AT_RISK can mark it LOST.
NEW is frozen here; only payment ingestion promotes it.
"""
from enum import Enum
from typing import Optional

from backend.app.models.lifecycle_orm import CustomerStatus
from backend.app.services.threshold_calculator import Thresholds


class ActivityBucket(str, Enum):
    RECENT = "recent"       # days < at-risk threshold
    LAPSING = "lapsing"     # at-risk threshold <= days < lost threshold
    LAPSED = "lapsed"       # days >= lost threshold


_S = CustomerStatus
_B = ActivityBucket

TRANSITIONS: dict[tuple[CustomerStatus, ActivityBucket], CustomerStatus] = {
    (_S.ACTIVE, _B.RECENT): _S.ACTIVE,
    (_S.ACTIVE, _B.LAPSING): _S.AT_RISK,
    (_S.ACTIVE, _B.LAPSED): _S.AT_RISK,

    (_S.RECOVERED, _B.RECENT): _S.RECOVERED,
    (_S.RECOVERED, _B.LAPSING): _S.AT_RISK,
    (_S.RECOVERED, _B.LAPSED): _S.AT_RISK,

    (_S.AT_RISK, _B.RECENT): _S.RECOVERED,
    (_S.AT_RISK, _B.LAPSING): _S.AT_RISK,
    (_S.AT_RISK, _B.LAPSED): _S.LOST,

    (_S.LOST, _B.RECENT): _S.RECOVERED,
    (_S.LOST, _B.LAPSING): _S.LOST,
    (_S.LOST, _B.LAPSED): _S.LOST,
}


def classify_activity(days_since_last_activity: float, thresholds: Thresholds) -> ActivityBucket:
    if days_since_last_activity >= thresholds.lost_days:
        return ActivityBucket.LAPSED
    if days_since_last_activity >= thresholds.at_risk_days:
        return ActivityBucket.LAPSING
    return ActivityBucket.RECENT


def next_status(
    current: CustomerStatus,
    days_since_last_activity: Optional[float],
    thresholds: Thresholds,
) -> CustomerStatus:
    """Compute the status a relationship should move to; returns `current` for no change."""
    current = CustomerStatus(current)
    if current is CustomerStatus.NEW or days_since_last_activity is None:
        return current

    bucket = classify_activity(days_since_last_activity, thresholds)
    return TRANSITIONS[(current, bucket)]


def _format_days(days: float) -> str:
    rounded = round(days, 1)
    return str(int(rounded)) if rounded == int(rounded) else str(rounded)


def describe_transition(
    old: CustomerStatus,
    new: CustomerStatus,
    days_since_last_activity: Optional[float],
    thresholds: Optional[Thresholds],
    activity_type: Optional[str] = None,
) -> str:
    """Human-readable reason stored with the audit entry."""
    source = activity_type or "activity"
    old, new = CustomerStatus(old), CustomerStatus(new)

    if new is CustomerStatus.AT_RISK and thresholds is not None:
        return (
            f"No {source} for {_format_days(days_since_last_activity)} days "
            f"(threshold: {_format_days(thresholds.at_risk_days)} days)"
        )
    if new is CustomerStatus.LOST and thresholds is not None:
        return (
            f"No {source} for {_format_days(days_since_last_activity)} days "
            f"(threshold: {_format_days(thresholds.lost_days)} days)"
        )
    if new is CustomerStatus.RECOVERED:
        if old is CustomerStatus.LOST:
            return f"Customer returned with {source} after being lost"
        if old is CustomerStatus.AT_RISK:
            return f"Customer returned with {source} after being at risk"
        return "Customer recovered and maintaining recovered status"
    if new is CustomerStatus.ACTIVE:
        if old is CustomerStatus.NEW:
            return f"Customer became active with regular {source}"
        return f"Customer maintaining active status with {source}"

    return f"Status changed from {old.label} to {new.label} based on {source}"
