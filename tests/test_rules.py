"""
Unit tests for alert rule evaluation and alert rendering.
"""

from datetime import date, timedelta
from typing import List

import pytest

from costlog.core import rules as rules_module
from costlog.core.rules import Trigger, build_alert, evaluate_rule
from costlog.storage.models import (
    AlertRule,
    AlertType,
    Period,
    Provider,
    Severity,
    TriggerType,
    UsageRecord,
)

TODAY = date(2024, 3, 15)


def make_rule(
    trigger_type: TriggerType = TriggerType.SPEND_THRESHOLD,
    threshold: float = 50.0,
    period: Period = Period.DAILY,
    provider: str = "all",
    model=None,
    name: str = "Test rule",
) -> AlertRule:
    return AlertRule(
        id="rule-1",
        name=name,
        trigger_type=trigger_type,
        threshold=threshold,
        period=period,
        provider=provider,
        model=model,
    )


def make_record(record_id: str, cost: float, day: date = TODAY,
                provider: Provider = Provider.OPENAI, model: str = "gpt-4o") -> UsageRecord:
    return UsageRecord(
        id=record_id,
        provider=provider,
        date=day,
        model=model,
        input_tokens=10,
        output_tokens=10,
        cost=cost,
    )


def spike_usage(last_cost: float) -> List[UsageRecord]:
    """Six flat days of $10 followed by ``last_cost`` today."""
    records = [make_record(f"d{i}", 10.0, TODAY - timedelta(days=i)) for i in range(1, 7)]
    records.append(make_record("today", last_cost))
    return records


class TestSpendThreshold:
    """Test spend_threshold rules across periods."""

    def test_daily_spend_over_threshold_triggers(self):
        usage = [make_record("a", 35.0), make_record("b", 25.0)]

        trigger = evaluate_rule(make_rule(threshold=50), usage, TODAY)

        assert trigger == Trigger(value=60.0, threshold=50.0)

    def test_daily_spend_under_threshold_does_not_trigger(self):
        usage = [make_record("a", 40.0)]

        assert evaluate_rule(make_rule(threshold=50), usage, TODAY) is None

    def test_exactly_at_threshold_triggers(self):
        usage = [make_record("a", 50.0)]

        assert evaluate_rule(make_rule(threshold=50), usage, TODAY) is not None

    def test_weekly_period_uses_week_spend(self):
        usage = [make_record(str(i), 10.0, TODAY - timedelta(days=i)) for i in range(6)]
        rule = make_rule(threshold=50, period=Period.WEEKLY)

        trigger = evaluate_rule(rule, usage, TODAY)

        assert trigger is not None
        assert trigger.value == pytest.approx(60.0)

    def test_monthly_period_uses_month_spend(self):
        usage = [
            make_record("feb", 100.0, date(2024, 2, 28)),
            make_record("mar", 30.0, date(2024, 3, 2)),
        ]
        rule = make_rule(threshold=50, period=Period.MONTHLY)

        assert evaluate_rule(rule, usage, TODAY) is None

    def test_provider_filter(self):
        usage = [
            make_record("a", 40.0, provider=Provider.OPENAI),
            make_record("b", 40.0, provider=Provider.ANTHROPIC),
        ]

        assert evaluate_rule(make_rule(threshold=50, provider="openai"), usage, TODAY) is None
        assert evaluate_rule(make_rule(threshold=50, provider="all"), usage, TODAY) is not None


class TestDailyLimit:
    """Test daily_limit ignores the rule period."""

    def test_uses_today_even_with_monthly_period(self):
        usage = [
            make_record("yesterday", 100.0, TODAY - timedelta(days=1)),
            make_record("today", 5.0),
        ]
        rule = make_rule(TriggerType.DAILY_LIMIT, threshold=20, period=Period.MONTHLY)

        assert evaluate_rule(rule, usage, TODAY) is None

        usage.append(make_record("today-2", 20.0))
        assert evaluate_rule(rule, usage, TODAY) == Trigger(value=25.0, threshold=20.0)


class TestModelLimit:
    """Test model_limit rules."""

    def test_without_model_never_triggers(self):
        usage = [make_record(str(i), 1000.0) for i in range(5)]
        rule = make_rule(TriggerType.MODEL_LIMIT, threshold=0, model=None)

        assert evaluate_rule(rule, usage, TODAY) is None

    def test_sums_exact_model_matches_only(self):
        usage = [
            make_record("a", 30.0, model="gpt-4o"),
            make_record("b", 30.0, model="gpt-4o", day=TODAY - timedelta(days=90)),
            make_record("c", 500.0, model="gpt-4o-mini"),
        ]
        rule = make_rule(TriggerType.MODEL_LIMIT, threshold=50, model="gpt-4o")

        assert evaluate_rule(rule, usage, TODAY) == Trigger(value=60.0, threshold=50.0)


class TestSpike:
    """Test spike rules compare percentages."""

    def test_no_anomaly_no_trigger(self):
        rule = make_rule(TriggerType.SPIKE, threshold=10)

        assert evaluate_rule(rule, spike_usage(12.0), TODAY) is None

    def test_anomaly_above_percentage_threshold(self):
        rule = make_rule(TriggerType.SPIKE, threshold=150)

        trigger = evaluate_rule(rule, spike_usage(30.0), TODAY)

        assert trigger is not None
        assert trigger.value == pytest.approx(200.0)
        assert trigger.threshold == 150

    def test_anomaly_below_percentage_threshold(self):
        rule = make_rule(TriggerType.SPIKE, threshold=250)

        assert evaluate_rule(rule, spike_usage(30.0), TODAY) is None


class TestBuildAlert:
    """Test severity and message templates."""

    def test_spend_threshold_warning(self):
        rule = make_rule(name="Daily cap")

        alert = build_alert(rule, Trigger(value=55.0, threshold=50.0))

        assert alert.type == AlertType.THRESHOLD
        assert alert.severity == Severity.WARNING
        assert alert.title == "Budget Alert: Daily cap"
        assert alert.message == "Today: $55.00 (threshold: $50.00)"
        assert alert.rule_id == "rule-1"

    def test_spend_threshold_critical_at_120_percent(self):
        rule = make_rule(period=Period.WEEKLY, provider="anthropic")

        alert = build_alert(rule, Trigger(value=60.0, threshold=50.0))

        assert alert.severity == Severity.CRITICAL
        assert alert.message == "This week (anthropic): $60.00 (threshold: $50.00)"

    def test_spike_severity(self):
        rule = make_rule(TriggerType.SPIKE, threshold=50, name="Spikes")

        warning = build_alert(rule, Trigger(value=150.4, threshold=50))
        critical = build_alert(rule, Trigger(value=200.0, threshold=50))

        assert warning.severity == Severity.WARNING
        assert critical.severity == Severity.CRITICAL
        assert warning.title == "Spike Detected: Spikes"
        assert warning.message == "Spend is 150% above average"

    def test_daily_limit_is_always_warning(self):
        rule = make_rule(TriggerType.DAILY_LIMIT, threshold=10, provider="openai")

        alert = build_alert(rule, Trigger(value=100.0, threshold=10.0))

        assert alert.severity == Severity.WARNING
        assert alert.message == "Today's spend (openai): $100.00 (limit: $10.00)"

    def test_model_limit_message(self):
        rule = make_rule(TriggerType.MODEL_LIMIT, threshold=10, model="gpt-4o", name="GPT-4o")

        alert = build_alert(rule, Trigger(value=12.346, threshold=10.0))

        assert alert.severity == Severity.WARNING
        assert alert.title == "Model Limit: GPT-4o"
        assert alert.message == "gpt-4o: $12.35 (limit: $10.00)"


class TestTriggerTypeCoverage:
    """Every trigger type must have an evaluator and an alert template."""

    def test_tables_cover_all_trigger_types(self):
        assert set(rules_module._EVALUATORS) == set(TriggerType)
        assert set(rules_module._ALERT_BUILDERS) == set(TriggerType)
