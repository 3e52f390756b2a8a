"""
Alert rule evaluation.

Each trigger type has its own evaluator and its own alert template. Both
tables must cover every ``TriggerType`` member; a missing entry is an import
error rather than a silently ignored rule.
"""

from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence

from costlog.storage.models import (
    ALL_PROVIDERS,
    AlertRule,
    AlertType,
    NewAlert,
    Period,
    Severity,
    TriggerType,
    UsageRecord,
)

from .anomaly import detect_anomalies
from .stats import month_spend, today_spend, week_spend

# spend_threshold alerts escalate to critical at 120% of the threshold
CRITICAL_SPEND_RATIO = 1.2
# spike alerts escalate to critical at +200%
CRITICAL_SPIKE_PERCENT = 200.0


@dataclass(frozen=True)
class Trigger:
    """Observed value that satisfied a rule, with the rule's threshold."""
    value: float
    threshold: float


Evaluator = Callable[[AlertRule, Sequence[UsageRecord], Optional[date]], Optional[float]]


def _filter_by_provider(rule: AlertRule, usage: Sequence[UsageRecord]) -> List[UsageRecord]:
    if not rule.provider or rule.provider == ALL_PROVIDERS:
        return list(usage)
    return [u for u in usage if u.provider.value == rule.provider]


def _period_spend(rule, usage, today):
    if rule.period == Period.DAILY:
        return today_spend(usage, today)
    if rule.period == Period.WEEKLY:
        return week_spend(usage, today)
    return month_spend(usage, today)


def _daily_spend(rule, usage, today):
    return today_spend(usage, today)


def _model_spend(rule, usage, today):
    if not rule.model:
        return None
    return sum(u.cost for u in usage if u.model == rule.model)


def _spike_percent(rule, usage, today):
    anomalies = detect_anomalies(usage, today=today)
    if not anomalies:
        return None
    return anomalies[-1].percentage_increase


_EVALUATORS: Dict[TriggerType, Evaluator] = {
    TriggerType.SPEND_THRESHOLD: _period_spend,
    TriggerType.SPIKE: _spike_percent,
    TriggerType.DAILY_LIMIT: _daily_spend,
    TriggerType.MODEL_LIMIT: _model_spend,
}


def evaluate_rule(
    rule: AlertRule,
    usage: Sequence[UsageRecord],
    today: Optional[date] = None,
) -> Optional[Trigger]:
    """Decide whether a rule's condition currently holds.

    Usage is first narrowed to the rule's provider. Dollar-based trigger
    types compare spend against the threshold; ``spike`` compares the most
    recent anomaly's percentage increase against it.

    Args:
        rule: Rule to evaluate
        usage: Full set of usage records
        today: Reference day (defaults to today)

    Returns:
        The triggering value and threshold, or None when the rule does not fire
    """
    value = _EVALUATORS[rule.trigger_type](rule, _filter_by_provider(rule, usage), today)
    if value is None or value < rule.threshold:
        return None
    return Trigger(value=value, threshold=rule.threshold)


def _period_label(period: Period) -> str:
    return {
        Period.DAILY: "Today",
        Period.WEEKLY: "This week",
        Period.MONTHLY: "This month",
    }[period]


def _provider_label(rule: AlertRule) -> str:
    if not rule.provider or rule.provider == ALL_PROVIDERS:
        return ""
    return f" ({rule.provider})"


def _dollars(amount: float) -> str:
    return f"${amount:.2f}"


def _spend_threshold_alert(rule: AlertRule, trigger: Trigger) -> NewAlert:
    severity = (
        Severity.CRITICAL
        if trigger.value >= trigger.threshold * CRITICAL_SPEND_RATIO
        else Severity.WARNING
    )
    return NewAlert(
        type=AlertType.THRESHOLD,
        title=f"Budget Alert: {rule.name}",
        message=(
            f"{_period_label(rule.period)}{_provider_label(rule)}: "
            f"{_dollars(trigger.value)} (threshold: {_dollars(trigger.threshold)})"
        ),
        severity=severity,
        rule_id=rule.id,
    )


def _spike_alert(rule: AlertRule, trigger: Trigger) -> NewAlert:
    severity = Severity.CRITICAL if trigger.value >= CRITICAL_SPIKE_PERCENT else Severity.WARNING
    return NewAlert(
        type=AlertType.THRESHOLD,
        title=f"Spike Detected: {rule.name}",
        message=f"Spend is {trigger.value:.0f}% above average{_provider_label(rule)}",
        severity=severity,
        rule_id=rule.id,
    )


def _daily_limit_alert(rule: AlertRule, trigger: Trigger) -> NewAlert:
    return NewAlert(
        type=AlertType.THRESHOLD,
        title=f"Daily Limit Exceeded: {rule.name}",
        message=(
            f"Today's spend{_provider_label(rule)}: "
            f"{_dollars(trigger.value)} (limit: {_dollars(trigger.threshold)})"
        ),
        severity=Severity.WARNING,
        rule_id=rule.id,
    )


def _model_limit_alert(rule: AlertRule, trigger: Trigger) -> NewAlert:
    return NewAlert(
        type=AlertType.THRESHOLD,
        title=f"Model Limit: {rule.name}",
        message=(
            f"{rule.model}{_provider_label(rule)}: "
            f"{_dollars(trigger.value)} (limit: {_dollars(trigger.threshold)})"
        ),
        severity=Severity.WARNING,
        rule_id=rule.id,
    )


_ALERT_BUILDERS: Dict[TriggerType, Callable[[AlertRule, Trigger], NewAlert]] = {
    TriggerType.SPEND_THRESHOLD: _spend_threshold_alert,
    TriggerType.SPIKE: _spike_alert,
    TriggerType.DAILY_LIMIT: _daily_limit_alert,
    TriggerType.MODEL_LIMIT: _model_limit_alert,
}


def build_alert(rule: AlertRule, trigger: Trigger) -> NewAlert:
    """Render the alert content for a triggered rule."""
    return _ALERT_BUILDERS[rule.trigger_type](rule, trigger)


for _table_name, _table in (("evaluator", _EVALUATORS), ("alert builder", _ALERT_BUILDERS)):
    _missing = set(TriggerType) - set(_table)
    if _missing:
        raise RuntimeError(f"No {_table_name} for trigger types: {sorted(t.value for t in _missing)}")
