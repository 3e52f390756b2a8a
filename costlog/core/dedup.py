"""
Debounce gate for fired alerts.

A rule that fired recently is not fired again until its period's debounce
window has passed, no matter how often the rules are re-evaluated.
"""

from datetime import datetime, timedelta
from typing import Optional, Sequence

from costlog.storage.models import Alert, Period

DEBOUNCE_WINDOWS = {
    Period.DAILY: timedelta(hours=4),
    Period.WEEKLY: timedelta(days=1),
    Period.MONTHLY: timedelta(days=3),
}
DEFAULT_DEBOUNCE_WINDOW = timedelta(days=3)


def debounce_window(period: Optional[Period]) -> timedelta:
    """Minimum interval between two alerts for a rule with this period."""
    return DEBOUNCE_WINDOWS.get(period, DEFAULT_DEBOUNCE_WINDOW)


def recently_triggered(
    rule_id: str,
    period: Optional[Period],
    alerts: Sequence[Alert],
    now: Optional[datetime] = None,
) -> bool:
    """Return True when an alert for ``rule_id`` fired inside the debounce window.

    Args:
        rule_id: Identity of the rule (stored on each alert as ``rule_id``)
        period: Rule period selecting the window length
        alerts: Previously stored alerts
        now: Reference time (defaults to now)
    """
    cutoff = (now or datetime.now()) - debounce_window(period)
    return any(a.rule_id == rule_id and a.date > cutoff for a in alerts)
