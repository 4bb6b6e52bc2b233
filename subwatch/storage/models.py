"""
Data models for storage layer.

Defines the persisted entities of the subscription tracker.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class BillingCycle(Enum):
    """Recurrence unit for a subscription's charge."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class User:
    """Owner identity for subscriptions."""
    id: int
    username: str
    created_at: datetime


@dataclass(frozen=True)
class Subscription:
    """A recurring subscription as stored.

    ``cost`` is one charge per billing cycle. Field values are not
    validated here; the repository rejects bad input on write.
    """
    id: int
    user_id: int
    name: str
    cost: Decimal
    billing_cycle: BillingCycle
    start_date: datetime
    is_active: bool = True
    auto_cancel: bool = False  # Ghost Cancel flag, advisory only
    last_usage_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class UsageLogEntry:
    """Immutable record of one usage of a subscription.

    Entries form an append-only ledger and are never modified.
    """
    id: int
    subscription_id: int
    timestamp: datetime
