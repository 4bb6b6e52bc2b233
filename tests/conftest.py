"""
Shared test helpers.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List

from subwatch.storage.models import BillingCycle, Subscription


class FakeLedger:
    """In-memory usage ledger keyed by subscription id."""

    def __init__(self, events: Dict[int, List[datetime]] = None):
        self.events = events or {}
        self.queries = []

    def count_since(self, subscription_id: int, since: datetime) -> int:
        self.queries.append((subscription_id, since))
        return sum(1 for ts in self.events.get(subscription_id, []) if ts >= since)


def make_subscription(
    id: int = 1,
    cost: str = "15.99",
    start_date: datetime = datetime(2024, 1, 15),
    is_active: bool = True,
    billing_cycle: BillingCycle = BillingCycle.MONTHLY,
    name: str = "Netflix",
) -> Subscription:
    return Subscription(
        id=id,
        user_id=1,
        name=name,
        cost=Decimal(cost),
        billing_cycle=billing_cycle,
        start_date=start_date,
        is_active=is_active,
    )
