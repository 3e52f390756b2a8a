"""
Unit tests for anomaly detection.

Tests the history requirements and the two-sided spike condition.
"""

from datetime import date, timedelta
from typing import List

import pytest

from costlog.core.anomaly import Anomaly, detect_anomalies
from costlog.storage.models import Provider, UsageRecord

TODAY = date(2024, 3, 15)


class TestAnomalyDetection:
    """Test anomaly detection rules and data requirements."""

    def create_usage(self, daily_costs: List[float], today: date = TODAY) -> List[UsageRecord]:
        """Create one record per day, the last cost landing on ``today``.

        Args:
            daily_costs: Costs ordered oldest to newest (0 means no record)
            today: Day of the last cost
        """
        records = []
        for offset, cost in enumerate(reversed(daily_costs)):
            if cost == 0:
                continue
            records.append(UsageRecord(
                id=f"rec-{offset}",
                provider=Provider.OPENAI,
                date=today - timedelta(days=offset),
                model="gpt-4o",
                input_tokens=1000,
                output_tokens=500,
                cost=cost,
            ))
        return records

    def test_flat_history_small_increase_is_not_anomalous(self):
        """12 is above mean + 2*stddev (stddev 0) but not above 1.5 * mean."""
        usage = self.create_usage([10, 10, 10, 10, 10, 10, 12])

        assert detect_anomalies(usage, window_days=7, today=TODAY) == []

    def test_flat_history_large_spike_is_anomalous(self):
        usage = self.create_usage([10, 10, 10, 10, 10, 10, 30])

        anomalies = detect_anomalies(usage, window_days=7, today=TODAY)

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.date == TODAY
        assert anomaly.expected_spend == pytest.approx(10.0)
        assert anomaly.actual_spend == 30.0
        assert anomaly.percentage_increase == pytest.approx(200.0)

    def test_window_shorter_than_seven_days_returns_empty(self):
        usage = self.create_usage([10, 10, 10, 10, 10, 100])

        assert detect_anomalies(usage, window_days=6, today=TODAY) == []

    def test_fewer_than_three_nonzero_history_days_returns_empty(self):
        usage = self.create_usage([0, 0, 0, 0, 10, 10, 100])

        assert detect_anomalies(usage, window_days=7, today=TODAY) == []

    def test_zero_days_are_excluded_from_history(self):
        """Zero days would drag the mean down; only spending days count."""
        usage = self.create_usage([0, 0, 0, 10, 10, 10, 14])

        assert detect_anomalies(usage, window_days=7, today=TODAY) == []

    def test_empty_usage_returns_empty(self):
        assert detect_anomalies([], today=TODAY) == []

    def test_requires_both_bounds(self):
        """A noisy history raises mean + 2*stddev above 1.5 * mean."""
        usage = self.create_usage([2, 20, 2, 20, 2, 20, 25])

        # mean 11, stddev 9 -> upper bound 29 > 25 even though 25 > 16.5
        assert detect_anomalies(usage, window_days=7, today=TODAY) == []

    def test_only_last_three_days_are_checked(self):
        usage = self.create_usage([10, 10, 100, 10, 10, 10, 10, 10])

        assert detect_anomalies(usage, window_days=8, today=TODAY) == []

    def test_multiple_flagged_days_ordered_oldest_first(self):
        usage = self.create_usage([10] * 11 + [40, 10, 50])

        anomalies = detect_anomalies(usage, window_days=14, today=TODAY)

        assert [a.date for a in anomalies] == [TODAY - timedelta(days=2), TODAY]
        assert anomalies[-1].actual_spend == 50

    def test_default_window_is_fourteen_days(self):
        # Spending days outside the last 14 are ignored
        usage = self.create_usage([500, 500] + [10] * 13 + [30])

        anomalies = detect_anomalies(usage, today=TODAY)

        assert len(anomalies) == 1
        assert anomalies[0].expected_spend == pytest.approx(10.0)

    def test_percentage_increase_formula(self):
        anomaly = Anomaly(date=TODAY, expected_spend=8.0, actual_spend=20.0)
        assert anomaly.percentage_increase == pytest.approx(150.0)
