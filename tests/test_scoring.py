"""
Unit tests for subscription value scoring.

Covers cost-per-use formatting, value tiers, the renewal heuristic and the
scoring period boundary.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from subwatch.core.scoring import (
    ValueScore,
    classify_value,
    compute_cost_per_use,
    days_until_renewal,
    score_subscription,
)
from conftest import FakeLedger, make_subscription

NOW = datetime(2025, 6, 15, 12, 0)


class TestCostPerUse:
    """Test cost-per-use derivation."""

    def test_rounds_half_up_to_two_decimals(self):
        """15.99 / 15 = 1.066 rounds to 1.07, not truncated to 1.06."""
        assert compute_cost_per_use(Decimal("15.99"), 15) == "1.07"

    def test_always_two_decimals(self):
        assert compute_cost_per_use(Decimal("50.00"), 5) == "10.00"
        assert compute_cost_per_use(Decimal("10.00"), 3) == "3.33"

    def test_exact_half_cent_rounds_up(self):
        assert compute_cost_per_use(Decimal("0.05"), 2) == "0.03"

    def test_zero_usage_returns_raw_cost(self):
        assert compute_cost_per_use(Decimal("54.99"), 0) == "54.99"
        assert compute_cost_per_use(Decimal("50.00"), 0) == "50.00"

    def test_negative_cost_passes_through(self):
        assert compute_cost_per_use(Decimal("-10.00"), 4) == "-2.50"
        assert compute_cost_per_use(Decimal("-10.00"), 0) == "-10.00"


class TestValueScore:
    """Test value tier classification."""

    @pytest.mark.parametrize("usage_count,expected", [
        (0, ValueScore.WASTE),
        (1, ValueScore.AVERAGE),
        (5, ValueScore.AVERAGE),
        (10, ValueScore.AVERAGE),
        (11, ValueScore.GOOD),
        (250, ValueScore.GOOD),
    ])
    def test_thresholds(self, usage_count, expected):
        assert classify_value(usage_count) == expected

    def test_enum_values_match_payload_strings(self):
        assert [score.value for score in ValueScore] == ["Good", "Average", "Waste"]


class TestDaysUntilRenewal:
    """Test the simplified renewal heuristic."""

    def test_mid_month_start(self):
        assert days_until_renewal(datetime(2024, 2, 15)) == 15

    def test_first_of_month(self):
        assert days_until_renewal(datetime(2024, 1, 1)) == 29

    def test_thirty_first_is_negative(self):
        assert days_until_renewal(datetime(2024, 1, 31)) == -1

    def test_ignores_time_of_day(self):
        assert days_until_renewal(datetime(2024, 1, 10, 23, 59)) == 20


class TestScoreSubscription:
    """Test the full per-subscription scoring pipeline."""

    def test_good_subscription(self):
        subscription = make_subscription(cost="15.99", start_date=datetime(2024, 1, 1))
        ledger = FakeLedger({1: [NOW - timedelta(days=1)] * 15})

        view = score_subscription(subscription, ledger, NOW)

        assert view.subscription is subscription
        assert view.usage_count == 15
        assert view.cost_per_use == "1.07"
        assert view.value_score == ValueScore.GOOD
        assert view.days_until_renewal == 29

    def test_average_subscription(self):
        subscription = make_subscription(cost="50.00", start_date=datetime(2024, 2, 15))
        ledger = FakeLedger({1: [NOW - timedelta(days=2)] * 5})

        view = score_subscription(subscription, ledger, NOW)

        assert view.usage_count == 5
        assert view.cost_per_use == "10.00"
        assert view.value_score == ValueScore.AVERAGE
        assert view.days_until_renewal == 15

    def test_no_history_is_waste(self):
        subscription = make_subscription(cost="54.99")
        view = score_subscription(subscription, FakeLedger(), NOW)

        assert view.usage_count == 0
        assert view.cost_per_use == "54.99"
        assert view.value_score == ValueScore.WASTE

    def test_queries_from_one_calendar_month_back(self):
        ledger = FakeLedger()
        score_subscription(make_subscription(), ledger, NOW)
        assert ledger.queries == [(1, datetime(2025, 5, 15, 12, 0))]

    def test_period_boundary_is_inclusive(self):
        period_start = datetime(2025, 5, 15, 12, 0)
        ledger = FakeLedger({1: [
            period_start,
            period_start - timedelta(microseconds=1),
        ]})

        view = score_subscription(make_subscription(), ledger, NOW)

        assert view.usage_count == 1

    def test_window_not_clamped_to_start_date(self):
        """Usage before the start date still counts if inside the period."""
        subscription = make_subscription(start_date=NOW - timedelta(days=2))
        ledger = FakeLedger({1: [NOW - timedelta(days=20)]})

        view = score_subscription(subscription, ledger, NOW)

        assert view.usage_count == 1

    def test_future_start_date_and_negative_cost_do_not_raise(self):
        subscription = make_subscription(cost="-5.00", start_date=datetime(2030, 1, 31))
        view = score_subscription(subscription, FakeLedger(), NOW)

        assert view.value_score == ValueScore.WASTE
        assert view.cost_per_use == "-5.00"
        assert view.days_until_renewal == -1

    def test_scoring_is_idempotent(self):
        subscription = make_subscription()
        ledger = FakeLedger({1: [NOW - timedelta(hours=3)] * 3})

        first = score_subscription(subscription, ledger, NOW)
        second = score_subscription(subscription, ledger, NOW)

        assert first == second
        assert subscription == make_subscription()

    def test_value_depends_only_on_cost_and_usage(self):
        ledger = FakeLedger({1: [NOW] * 4, 2: [NOW] * 4})
        a = score_subscription(make_subscription(id=1, start_date=datetime(2024, 1, 3)), ledger, NOW)
        b = score_subscription(
            replace(make_subscription(id=2, start_date=datetime(2020, 7, 28)), name="Other"),
            ledger,
            NOW,
        )

        assert (a.cost_per_use, a.value_score) == (b.cost_per_use, b.value_score)

    def test_ledger_errors_propagate(self):
        class BrokenLedger:
            def count_since(self, subscription_id, since):
                raise RuntimeError("database unavailable")

        with pytest.raises(RuntimeError, match="database unavailable"):
            score_subscription(make_subscription(), BrokenLedger(), NOW)
