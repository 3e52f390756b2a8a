"""
Monthly budget tracking.

Reports progress against the monthly budget, projects month-end spend and
raises the budget alert once spend crosses the warning threshold.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Sequence

from costlog.storage.models import Alert, AlertType, Budget, NewAlert, Period, Severity, UsageRecord
from costlog.storage.repository import CostLogStore

from .dedup import recently_triggered
from .stats import format_currency, month_spend

LOGGER = logging.getLogger(__name__)

# Identity used to debounce budget alerts, which have no rule of their own
BUDGET_ALERT_ID = "budget"


@dataclass(frozen=True)
class BudgetStatus:
    """Current month's spend measured against the budget."""
    spent: float
    limit: float
    percentage: float
    is_warning: bool
    is_over_budget: bool
    projected_spend: float
    will_exceed: bool
    days_remaining: int


def budget_status(
    usage: Sequence[UsageRecord],
    budget: Budget,
    today: Optional[date] = None,
) -> BudgetStatus:
    """Compute month-to-date budget status.

    The projection extrapolates the average daily spend so far over the whole
    calendar month. Percentage is capped at 100.
    """
    today = today or date.today()
    spent = month_spend(usage, today)
    days_in_month = calendar.monthrange(today.year, today.month)[1]
    days_elapsed = today.day

    percentage = min(spent / budget.monthly_limit * 100, 100.0) if budget.monthly_limit > 0 else 0.0
    projected = spent / days_elapsed * days_in_month

    return BudgetStatus(
        spent=spent,
        limit=budget.monthly_limit,
        percentage=percentage,
        is_warning=budget.monthly_limit > 0 and percentage >= budget.alert_threshold,
        is_over_budget=budget.monthly_limit > 0 and percentage >= 100,
        projected_spend=projected,
        will_exceed=projected > budget.monthly_limit,
        days_remaining=days_in_month - days_elapsed,
    )


def check_budget_threshold(
    store: CostLogStore,
    usage: Sequence[UsageRecord],
    now: Optional[datetime] = None,
) -> Optional[Alert]:
    """Record a budget alert when month-to-date spend crosses the threshold.

    Uses the monthly debounce window so the alert is not repeated on every
    sync.

    Returns:
        The recorded alert, or None when no budget is set, the
        threshold is not reached, or the alert is debounced
    """
    budget = store.get_budget()
    if budget is None:
        return None

    now = now or datetime.now()
    status = budget_status(usage, budget, now.date())
    if not status.is_warning:
        return None
    if recently_triggered(BUDGET_ALERT_ID, Period.MONTHLY, store.get_alerts(), now):
        LOGGER.info("Budget threshold reached but alert is still debounced")
        return None

    if status.is_over_budget:
        title = "Monthly Budget Exceeded"
        severity = Severity.CRITICAL
    else:
        title = "Monthly Budget Warning"
        severity = Severity.WARNING
    new_alert = NewAlert(
        type=AlertType.BUDGET,
        title=title,
        message=(
            f"This month: {format_currency(status.spent)} of {format_currency(status.limit)} "
            f"({status.percentage:.0f}%), projected {format_currency(status.projected_spend)}"
        ),
        severity=severity,
        rule_id=BUDGET_ALERT_ID,
    )
    alert = store.add_alert(new_alert, now)
    LOGGER.info("Budget alert recorded: %s", alert.message)
    return alert
