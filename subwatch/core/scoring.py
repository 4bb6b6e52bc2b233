"""
Subscription value scoring.

Derives usage count, cost-per-use, a value tier and a renewal estimate for
a single subscription. Nothing computed here is persisted; every read
recomputes from the usage ledger.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Protocol

from .periods import scoring_period_start
from subwatch.storage.models import Subscription

logger = logging.getLogger(__name__)

GOOD_USAGE_THRESHOLD = 10  # strictly more than this many uses is Good
RENEWAL_HEURISTIC_DAYS = 30


class UsageLedger(Protocol):
    """Query contract the scoring and dashboard code need from the ledger."""

    def count_since(self, subscription_id: int, since: datetime) -> int:
        ...


class ValueScore(Enum):
    """Value tier of a subscription for the current period."""
    GOOD = "Good"
    AVERAGE = "Average"
    WASTE = "Waste"


@dataclass(frozen=True)
class DerivedSubscriptionView:
    """A subscription together with its per-request derived figures."""
    subscription: Subscription
    usage_count: int
    cost_per_use: str
    value_score: ValueScore
    days_until_renewal: int


def format_cost(cost: Decimal) -> str:
    """Raw string form of a stored cost, e.g. ``Decimal("50.00") -> "50.00"``."""
    return str(cost)


def compute_cost_per_use(cost: Decimal, usage_count: int) -> str:
    """Cost per use as a string with exactly two decimals.

    With no usage the raw cost is returned undivided. That value is a cost
    per cycle, not per use, but clients already rely on it.

    Args:
        cost: Charge per billing cycle
        usage_count: Uses in the scoring period

    Returns:
        ``cost / usage_count`` rounded half-up to 2 places, or the raw cost
    """
    if usage_count > 0:
        per_use = Decimal(cost) / Decimal(usage_count)
        return str(per_use.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    return format_cost(cost)


def classify_value(usage_count: int) -> ValueScore:
    """Map a usage count to a value tier.

    Zero is checked first and always means Waste.
    """
    if usage_count == 0:
        return ValueScore.WASTE
    if usage_count > GOOD_USAGE_THRESHOLD:
        return ValueScore.GOOD
    return ValueScore.AVERAGE


def days_until_renewal(start_date: datetime) -> int:
    """Simplified renewal estimate: 30 minus the start day of month.

    The current date is not considered and the result is not clamped, so a
    start on the 31st yields -1.
    """
    return RENEWAL_HEURISTIC_DAYS - start_date.day


def score_subscription(
    subscription: Subscription,
    ledger: UsageLedger,
    now: datetime,
) -> DerivedSubscriptionView:
    """Compute the derived view of one subscription.

    Total over its inputs: no usage history, a future start date or a
    negative cost all pass through without raising. Ledger errors
    propagate unchanged.

    Args:
        subscription: Stored subscription record
        ledger: Usage ledger to count events from
        now: Reference time for the scoring period

    Returns:
        DerivedSubscriptionView for the subscription
    """
    period_start = scoring_period_start(now)
    usage_count = ledger.count_since(subscription.id, period_start)

    view = DerivedSubscriptionView(
        subscription=subscription,
        usage_count=usage_count,
        cost_per_use=compute_cost_per_use(subscription.cost, usage_count),
        value_score=classify_value(usage_count),
        days_until_renewal=days_until_renewal(subscription.start_date),
    )
    logger.debug(
        "Scored subscription %s: %d uses since %s -> %s",
        subscription.id, usage_count, period_start.isoformat(), view.value_score.value,
    )
    return view
