"""
Unit tests for the alert debounce gate.
"""

from datetime import datetime, timedelta

import pytest

from costlog.core.dedup import debounce_window, recently_triggered
from costlog.storage.models import Alert, AlertType, Period, Severity

NOW = datetime(2024, 3, 15, 12, 0, 0)


def make_alert(rule_id, fired_at: datetime) -> Alert:
    return Alert(
        id=f"alert-{rule_id}-{fired_at.isoformat()}",
        type=AlertType.THRESHOLD,
        title="Budget Alert",
        message="Today: $60.00 (threshold: $50.00)",
        date=fired_at,
        severity=Severity.WARNING,
        rule_id=rule_id,
    )


class TestDebounceWindow:
    """Test window lengths per period."""

    @pytest.mark.parametrize("period, expected", [
        (Period.DAILY, timedelta(hours=4)),
        (Period.WEEKLY, timedelta(days=1)),
        (Period.MONTHLY, timedelta(days=3)),
        (None, timedelta(days=3)),
    ])
    def test_window(self, period, expected):
        assert debounce_window(period) == expected


class TestRecentlyTriggered:
    """Test suppression of repeated alerts."""

    def test_no_alerts(self):
        assert not recently_triggered("rule-1", Period.DAILY, [], NOW)

    def test_alert_inside_window_suppresses(self):
        alerts = [make_alert("rule-1", NOW - timedelta(hours=3))]

        assert recently_triggered("rule-1", Period.DAILY, alerts, NOW)

    def test_alert_outside_window_does_not_suppress(self):
        alerts = [make_alert("rule-1", NOW - timedelta(hours=5))]

        assert not recently_triggered("rule-1", Period.DAILY, alerts, NOW)
        assert recently_triggered("rule-1", Period.WEEKLY, alerts, NOW)

    def test_other_rule_does_not_suppress(self):
        alerts = [make_alert("rule-2", NOW - timedelta(minutes=1))]

        assert not recently_triggered("rule-1", Period.MONTHLY, alerts, NOW)

    def test_rule_id_must_match_exactly(self):
        """A rule id that is a prefix of another rule's id is a different rule."""
        alerts = [make_alert("rule-10", NOW - timedelta(minutes=1))]

        assert not recently_triggered("rule-1", Period.MONTHLY, alerts, NOW)

    def test_alerts_without_rule_are_ignored(self):
        alerts = [make_alert(None, NOW - timedelta(minutes=1))]

        assert not recently_triggered("rule-1", Period.DAILY, alerts, NOW)
