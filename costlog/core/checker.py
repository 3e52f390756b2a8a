"""
Alert rule checking.

Runs every enabled rule against the current usage, suppresses rules that
fired recently, records new alerts and hands them to the dispatcher.

Order for each rule:
1. Evaluate the rule condition
2. Skip if an alert for the rule is still inside its debounce window
3. Persist the alert and stamp the rule's ``last_triggered``
4. Start notification delivery (not awaited)
"""

import logging
from datetime import date, datetime
from typing import Callable, List, Optional, Sequence

from costlog.notify.dispatcher import NotificationDispatcher
from costlog.storage.models import Alert, UsageRecord
from costlog.storage.repository import CostLogStore

from .dedup import recently_triggered
from .rules import build_alert, evaluate_rule

LOGGER = logging.getLogger(__name__)


class AlertChecker:
    """Evaluate stored alert rules and fire the ones that hold."""

    def __init__(
        self,
        store: CostLogStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self._clock = clock

    def check_alert_rules(
        self,
        usage: Sequence[UsageRecord],
        today: Optional[date] = None,
    ) -> List[Alert]:
        """Fire every enabled rule whose condition holds and is not debounced.

        Args:
            usage: Full set of usage records
            today: Reference day for period spend (defaults to the clock's date)

        Returns:
            Alerts newly recorded in this pass (empty when nothing fired)
        """
        now = self._clock()
        today = today or now.date()
        fired = []

        for rule in self.store.get_alert_rules():
            if not rule.enabled:
                continue

            trigger = evaluate_rule(rule, usage, today)
            if trigger is None:
                continue

            if recently_triggered(rule.id, rule.period, self.store.get_alerts(), now):
                LOGGER.info("Rule %s triggered but is still debounced", rule.id)
                continue

            new_alert = build_alert(rule, trigger)
            alert = self.store.add_alert(new_alert, now)
            self.store.update_alert_rule_last_triggered(rule.id, now)
            LOGGER.info("Rule %s fired: %s", rule.id, alert.message)
            fired.append(alert)

            if self.dispatcher is not None:
                self.dispatcher.dispatch(rule, new_alert)

        return fired


def check_alert_rules(
    usage: Sequence[UsageRecord],
    store: CostLogStore,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> List[Alert]:
    """Run one checking pass with the current time."""
    return AlertChecker(store, dispatcher).check_alert_rules(usage)
