# subwatch/demo/seed_demo_data.py

import logging
from datetime import datetime
from typing import Optional

from subwatch.storage.db import DEFAULT_DB_PATH
from subwatch.storage.repository import (
    SubscriptionRepository,
    UsageRepository,
    UserRepository,
    initialize_schema,
)

logger = logging.getLogger(__name__)

DEMO_SUBSCRIPTIONS = [
    # name, cost, start date, active, auto cancel, usages to log
    ("Netflix", "15.99", datetime(2024, 1, 1), True, False, 15),
    ("Gym Membership", "50.00", datetime(2024, 2, 15), True, True, 5),
    ("Adobe Cloud", "54.99", datetime(2023, 11, 1), True, False, 0),
    ("Old Magazine", "9.99", datetime(2023, 5, 1), False, False, 0),
]


def seed_demo_data(
    db_path: str = DEFAULT_DB_PATH,
    username: str = "demo",
    now: Optional[datetime] = None,
) -> bool:
    """Create the demo account and its sample subscriptions if absent.

    Safe to run repeatedly: when the demo user already exists nothing is
    written.

    Args:
        db_path: Path to SQLite database file
        username: Demo account name
        now: Timestamp for the logged usages, defaults to now

    Returns:
        True if data was inserted, False if the demo user already existed
    """
    initialize_schema(db_path)
    users = UserRepository(db_path)
    if users.get_by_username(username) is not None:
        logger.info("Demo user %s already present, skipping seed", username)
        return False

    logger.info("Seeding database...")
    user = users.create(username)
    subscriptions = SubscriptionRepository(db_path)
    usage = UsageRepository(db_path)
    when = now or datetime.now()

    for name, cost, start_date, is_active, auto_cancel, usages in DEMO_SUBSCRIPTIONS:
        subscription = subscriptions.create(
            user_id=user.id,
            name=name,
            cost=cost,
            billing_cycle="monthly",
            start_date=start_date,
            is_active=is_active,
            auto_cancel=auto_cancel,
        )
        for _ in range(usages):
            usage.append(subscription.id, timestamp=when)

    logger.info("Seeding complete.")
    return True


if __name__ == "__main__":
    from subwatch.config.loader import load_settings
    from subwatch.config.logging import configure_logging

    settings = load_settings()
    configure_logging(settings.log_level)
    if seed_demo_data(settings.db_path, settings.demo_username):
        print("Demo data inserted")
    else:
        print("Demo data already present")
