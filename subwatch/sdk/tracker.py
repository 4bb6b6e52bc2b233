"""
Programmatic subscription tracker.

Wires the repositories to the scoring engine and dashboard aggregator and
returns JSON-ready payloads in the shape HTTP clients consume.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..core.dashboard import DashboardStats, aggregate_dashboard
from ..core.scoring import DerivedSubscriptionView, format_cost, score_subscription
from ..storage.db import DEFAULT_DB_PATH
from ..storage.models import Subscription, UsageLogEntry
from ..storage.repository import (
    SubscriptionRepository,
    UsageRepository,
    UserRepository,
    initialize_schema,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def subscription_to_dict(subscription: Subscription) -> Dict[str, Any]:
    """Serialize a stored subscription with camelCase keys."""
    return {
        "id": subscription.id,
        "userId": subscription.user_id,
        "name": subscription.name,
        "cost": format_cost(subscription.cost),
        "billingCycle": subscription.billing_cycle.value,
        "startDate": _iso(subscription.start_date),
        "isActive": subscription.is_active,
        "autoCancel": subscription.auto_cancel,
        "lastUsageDate": _iso(subscription.last_usage_date),
    }


def view_to_dict(view: DerivedSubscriptionView) -> Dict[str, Any]:
    """Serialize a derived view: the subscription plus its computed fields."""
    payload = subscription_to_dict(view.subscription)
    payload.update({
        "usageCount": view.usage_count,
        "costPerUse": view.cost_per_use,
        "valueScore": view.value_score.value,
        "daysUntilRenewal": view.days_until_renewal,
    })
    return payload


def stats_to_dict(stats: DashboardStats) -> Dict[str, Any]:
    """Serialize dashboard stats; spend is emitted as a plain number."""
    return {
        "totalMonthlySpend": float(stats.total_monthly_spend),
        "activeCount": stats.active_count,
        "cancelledCount": stats.cancelled_count,
        "wasteCount": stats.waste_count,
    }


def usage_entry_to_dict(entry: UsageLogEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "subscriptionId": entry.subscription_id,
        "date": _iso(entry.timestamp),
    }


class SubscriptionTracker:
    """Facade over the subscription store, usage ledger and core engines.

    The caller is responsible for resolving an authenticated user id; the
    tracker trusts the ids it is given.
    """

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the tracker.

        Args:
            db_path: Path to SQLite database file
            clock: Source of "now" for scoring windows and usage timestamps
        """
        self.db_path = db_path
        self.clock = clock
        self.users = UserRepository(db_path)
        self.subscriptions = SubscriptionRepository(db_path)
        self.usage = UsageRepository(db_path)

    def initialize(self) -> None:
        initialize_schema(self.db_path)

    def score_all(self, user_id: int) -> List[DerivedSubscriptionView]:
        now = self.clock()
        return [
            score_subscription(subscription, self.usage, now)
            for subscription in self.subscriptions.list_for_user(user_id)
        ]

    def dashboard_stats(self, user_id: int) -> DashboardStats:
        return aggregate_dashboard(
            self.subscriptions.list_for_user(user_id), self.usage, self.clock()
        )

    def list_subscriptions(self, user_id: int) -> List[Dict[str, Any]]:
        """Derived views of every subscription the user owns."""
        return [view_to_dict(view) for view in self.score_all(user_id)]

    def dashboard(self, user_id: int) -> Dict[str, Any]:
        """Dashboard totals for the user."""
        return stats_to_dict(self.dashboard_stats(user_id))

    def log_usage(self, subscription_id: int) -> Dict[str, Any]:
        """Record one usage now and return the new ledger entry.

        Raises:
            SubscriptionNotFoundError: If the subscription does not exist
        """
        entry = self.usage.append(subscription_id, timestamp=self.clock())
        return usage_entry_to_dict(entry)
