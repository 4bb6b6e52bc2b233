"""
Dashboard aggregation.

Folds a user's full subscription set into portfolio-level totals.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from .periods import waste_window_start
from .scoring import UsageLedger
from subwatch.storage.models import Subscription


@dataclass(frozen=True)
class DashboardStats:
    """Portfolio totals for one user."""
    total_monthly_spend: Decimal
    active_count: int
    cancelled_count: int
    waste_count: int


def aggregate_dashboard(
    subscriptions: Iterable[Subscription],
    ledger: UsageLedger,
    now: datetime,
) -> DashboardStats:
    """Aggregate spend and status counts over a user's subscriptions.

    Rules per subscription:
    - Active: cost is added to total_monthly_spend as-is (yearly plans are
      not divided by 12), active_count is incremented, and waste_count is
      incremented when there were no uses in the last 30 days.
    - Inactive: cancelled_count is incremented.

    The 30-day waste window is independent of the calendar-month window
    used for value scoring. A failing ledger query fails the whole call.

    Args:
        subscriptions: Every subscription owned by the user
        ledger: Usage ledger to count events from
        now: Reference time for the waste window

    Returns:
        DashboardStats for the subscription set
    """
    since = waste_window_start(now)
    total_spend = Decimal("0")
    active_count = 0
    cancelled_count = 0
    waste_count = 0

    for subscription in subscriptions:
        if subscription.is_active:
            total_spend += subscription.cost
            active_count += 1
            if ledger.count_since(subscription.id, since) == 0:
                waste_count += 1
        else:
            cancelled_count += 1

    return DashboardStats(
        total_monthly_spend=total_spend,
        active_count=active_count,
        cancelled_count=cancelled_count,
        waste_count=waste_count,
    )
