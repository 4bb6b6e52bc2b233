"""
Repository pattern for data access.

Handles schema creation and persistence of users, subscriptions and the
append-only usage ledger.
"""

import logging
import sqlite3
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Union

from .db import DEFAULT_DB_PATH, get_connection
from .models import BillingCycle, Subscription, UsageLogEntry, User

logger = logging.getLogger(__name__)

CostInput = Union[Decimal, str, int, float]

# Fields a partial update may touch. Everything else is fixed at creation
# or owned by the usage ledger.
UPDATABLE_FIELDS = {"name", "cost", "billing_cycle", "is_active", "auto_cancel", "trial_end_date"}
IMMUTABLE_FIELDS = {"id", "user_id", "start_date", "last_usage_date", "created_at"}

# NUMERIC(10,2): eight integer digits
MAX_COST = Decimal("100000000")


class SubscriptionNotFoundError(LookupError):
    """Raised when a subscription id does not match any stored record."""

    def __init__(self, subscription_id: int):
        super().__init__(f"Subscription {subscription_id} not found")
        self.subscription_id = subscription_id


class DuplicateUserError(ValueError):
    """Raised when registering a username that is already taken."""


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the users, subscriptions and usage_logs tables if missing.

    usage_logs is an append-only ledger. Rows are only removed through the
    cascade when their subscription is deleted.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS subscriptions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                cost TEXT NOT NULL,
                billing_cycle TEXT NOT NULL,
                start_date TEXT NOT NULL,
                trial_end_date TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                auto_cancel INTEGER NOT NULL DEFAULT 0,
                last_usage_date TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS usage_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                subscription_id INTEGER NOT NULL,
                timestamp TEXT NOT NULL,
                FOREIGN KEY (subscription_id) REFERENCES subscriptions(id) ON DELETE CASCADE
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_subscriptions_user_id ON subscriptions(user_id)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_usage_logs_subscription_ts "
            "ON usage_logs(subscription_id, timestamp)"
        )
        conn.commit()
    finally:
        conn.close()
    logger.info("Schema initialized at %s", db_path)


def _to_db_timestamp(value: datetime) -> str:
    # Fixed width so that text comparison in SQL matches time order
    return value.isoformat(timespec="microseconds")


def _from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def normalize_cost(cost: CostInput) -> Decimal:
    """Validate a cost and quantize it to two decimal places.

    Args:
        cost: Amount as Decimal, numeric string, int or float

    Returns:
        Non-negative Decimal with exactly two decimal places

    Raises:
        ValueError: If cost is not a number, is negative or exceeds MAX_COST
    """
    if isinstance(cost, bool):
        raise ValueError(f"Invalid cost: {cost!r}")
    try:
        amount = Decimal(str(cost).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid cost: {cost!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid cost: {cost!r}")
    if amount < 0:
        raise ValueError("cost must be >= 0")
    try:
        amount = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Invalid cost: {cost!r}")
    if amount >= MAX_COST:
        raise ValueError(f"cost must be < {MAX_COST}")
    return amount


def normalize_billing_cycle(value: Union[BillingCycle, str]) -> BillingCycle:
    """Coerce a billing cycle name into a BillingCycle.

    Raises:
        ValueError: If the value is not a known cycle
    """
    if isinstance(value, BillingCycle):
        return value
    try:
        return BillingCycle(str(value).lower())
    except ValueError:
        valid_cycles = [cycle.value for cycle in BillingCycle]
        raise ValueError(f"billing_cycle must be one of: {valid_cycles}")


def _normalize_name(name: str) -> str:
    if not name or not name.strip():
        raise ValueError("name is required and cannot be empty")
    return name.strip()


class UserRepository:
    """Repository for user identities."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def create(self, username: str) -> User:
        """Register a new user.

        Raises:
            ValueError: If username is empty
            DuplicateUserError: If username is already registered
        """
        if not username or not username.strip():
            raise ValueError("username is required and cannot be empty")
        username = username.strip()
        created_at = datetime.now()

        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "INSERT INTO users (username, created_at) VALUES (?, ?)",
                (username, _to_db_timestamp(created_at)),
            )
            conn.commit()
            user_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            raise DuplicateUserError(f"Username already exists: {username}")
        finally:
            conn.close()

        return User(id=user_id, username=username, created_at=created_at)

    def get(self, user_id: int) -> Optional[User]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT id, username, created_at FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_user(row) if row else None

    def get_by_username(self, username: str) -> Optional[User]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT id, username, created_at FROM users WHERE username = ?",
                (username,),
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_user(row) if row else None

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            created_at=_from_db_timestamp(row["created_at"]),
        )


class SubscriptionRepository:
    """Record store for subscriptions.

    Provides get/list/update access to raw subscription records. Derived
    figures such as usage counts are never stored here.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def create(
        self,
        user_id: int,
        name: str,
        cost: CostInput,
        start_date: datetime,
        billing_cycle: Union[BillingCycle, str] = BillingCycle.MONTHLY,
        is_active: bool = True,
        auto_cancel: bool = False,
        trial_end_date: Optional[datetime] = None,
    ) -> Subscription:
        """Create a subscription owned by ``user_id``.

        Args:
            user_id: Owning user id
            name: Display name of the service
            cost: Charge per billing cycle, must be >= 0
            start_date: When the subscription started
            billing_cycle: monthly or yearly
            is_active: False to record an already cancelled subscription
            auto_cancel: Ghost Cancel eligibility flag
            trial_end_date: Optional end of a free trial

        Returns:
            The stored subscription

        Raises:
            ValueError: If name, cost or billing_cycle is invalid
            sqlite3.IntegrityError: If user_id does not exist
        """
        name = _normalize_name(name)
        amount = normalize_cost(cost)
        cycle = normalize_billing_cycle(billing_cycle)
        created_at = datetime.now()

        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                """
                INSERT INTO subscriptions (
                    user_id, name, cost, billing_cycle, start_date,
                    trial_end_date, is_active, auto_cancel, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    name,
                    str(amount),
                    cycle.value,
                    _to_db_timestamp(start_date),
                    _to_db_timestamp(trial_end_date) if trial_end_date else None,
                    int(is_active),
                    int(auto_cancel),
                    _to_db_timestamp(created_at),
                ),
            )
            conn.commit()
            subscription_id = cursor.lastrowid
        finally:
            conn.close()

        logger.info("Created subscription %s (%s) for user %s", subscription_id, name, user_id)
        return Subscription(
            id=subscription_id,
            user_id=user_id,
            name=name,
            cost=amount,
            billing_cycle=cycle,
            start_date=start_date,
            is_active=is_active,
            auto_cancel=auto_cancel,
            last_usage_date=None,
            trial_end_date=trial_end_date,
            created_at=created_at,
        )

    def get(self, subscription_id: int) -> Optional[Subscription]:
        """Get a subscription by id, or None if it does not exist."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM subscriptions WHERE id = ?", (subscription_id,)
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_subscription(row) if row else None

    def list_for_user(self, user_id: int) -> List[Subscription]:
        """List every subscription owned by a user, oldest record first."""
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM subscriptions WHERE user_id = ? ORDER BY id",
                (user_id,),
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_subscription(row) for row in rows]

    def update(self, subscription_id: int, **fields: Any) -> Subscription:
        """Apply a partial update and return the updated record.

        Only name, cost, billing_cycle, is_active, auto_cancel and
        trial_end_date may change.

        Raises:
            ValueError: If a field is unknown, immutable or invalid
            SubscriptionNotFoundError: If the subscription does not exist
        """
        immutable = set(fields) & IMMUTABLE_FIELDS
        if immutable:
            raise ValueError(f"Fields cannot be updated: {sorted(immutable)}")
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown subscription fields: {sorted(unknown)}")

        values: Dict[str, Any] = {}
        for key, value in fields.items():
            if key == "name":
                values[key] = _normalize_name(value)
            elif key == "cost":
                values[key] = str(normalize_cost(value))
            elif key == "billing_cycle":
                values[key] = normalize_billing_cycle(value).value
            elif key in ("is_active", "auto_cancel"):
                values[key] = int(bool(value))
            elif key == "trial_end_date":
                values[key] = _to_db_timestamp(value) if value else None

        if not values:
            subscription = self.get(subscription_id)
            if subscription is None:
                raise SubscriptionNotFoundError(subscription_id)
            return subscription

        assignments = ", ".join(f"{column} = ?" for column in values)
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"UPDATE subscriptions SET {assignments} WHERE id = ?",
                [*values.values(), subscription_id],
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise SubscriptionNotFoundError(subscription_id)
        finally:
            conn.close()

        return self.get(subscription_id)

    def set_active(self, subscription_id: int, is_active: bool) -> Subscription:
        """Mark a subscription active or cancelled."""
        return self.update(subscription_id, is_active=is_active)

    def delete(self, subscription_id: int) -> None:
        """Delete a subscription together with its usage log entries.

        Raises:
            SubscriptionNotFoundError: If the subscription does not exist
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "DELETE FROM subscriptions WHERE id = ?", (subscription_id,)
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise SubscriptionNotFoundError(subscription_id)
        finally:
            conn.close()
        logger.info("Deleted subscription %s", subscription_id)

    @staticmethod
    def _row_to_subscription(row: sqlite3.Row) -> Subscription:
        return Subscription(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            cost=Decimal(row["cost"]),
            billing_cycle=BillingCycle(row["billing_cycle"]),
            start_date=_from_db_timestamp(row["start_date"]),
            is_active=bool(row["is_active"]),
            auto_cancel=bool(row["auto_cancel"]),
            last_usage_date=_from_db_timestamp(row["last_usage_date"]),
            trial_end_date=_from_db_timestamp(row["trial_end_date"]),
            created_at=_from_db_timestamp(row["created_at"]),
        )


class UsageRepository:
    """Append-only ledger of subscription usage events.

    Counting is done from the stored timestamps on every call; there are
    no pre-aggregated counters.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def append(
        self,
        subscription_id: int,
        timestamp: Optional[datetime] = None,
    ) -> UsageLogEntry:
        """Log one usage of a subscription.

        The ledger insert and the subscription's last_usage_date update are
        written in a single transaction with the same timestamp.

        Args:
            subscription_id: Subscription that was used
            timestamp: Event time, defaults to now

        Returns:
            The new ledger entry

        Raises:
            SubscriptionNotFoundError: If the subscription does not exist
        """
        when = timestamp or datetime.now()
        stamp = _to_db_timestamp(when)

        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN TRANSACTION")
            cursor = conn.execute(
                "UPDATE subscriptions SET last_usage_date = ? WHERE id = ?",
                (stamp, subscription_id),
            )
            if cursor.rowcount == 0:
                raise SubscriptionNotFoundError(subscription_id)
            cursor = conn.execute(
                "INSERT INTO usage_logs (subscription_id, timestamp) VALUES (?, ?)",
                (subscription_id, stamp),
            )
            entry_id = cursor.lastrowid
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        logger.info("Logged usage %s for subscription %s", entry_id, subscription_id)
        return UsageLogEntry(id=entry_id, subscription_id=subscription_id, timestamp=when)

    def count_since(self, subscription_id: int, since: datetime) -> int:
        """Count ledger entries for a subscription with timestamp >= since.

        Returns 0 for a subscription with no entries.
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                """
                SELECT COUNT(*) FROM usage_logs
                WHERE subscription_id = ? AND timestamp >= ?
                """,
                (subscription_id, _to_db_timestamp(since)),
            ).fetchone()
        finally:
            conn.close()
        return int(row[0] or 0)

    def list_for_subscription(self, subscription_id: int) -> List[UsageLogEntry]:
        """Return all entries for a subscription, newest first."""
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                """
                SELECT id, subscription_id, timestamp FROM usage_logs
                WHERE subscription_id = ?
                ORDER BY timestamp DESC, id DESC
                """,
                (subscription_id,),
            ).fetchall()
        finally:
            conn.close()
        return [
            UsageLogEntry(
                id=row["id"],
                subscription_id=row["subscription_id"],
                timestamp=_from_db_timestamp(row["timestamp"]),
            )
            for row in rows
        ]
