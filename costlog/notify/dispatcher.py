"""
Notification fan-out for fired alerts.

Every channel delivery runs as its own task on a thread pool. The dispatcher
returns the futures without waiting on them; a failed delivery is logged
and never affects the other channels or the already-recorded alert.
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx

from costlog.storage.models import AlertRule, Channel, NewAlert, RecipientType
from costlog.storage.repository import CostLogStore

from .local import LocalNotifier
from .payloads import email_payload, slack_payload, webhook_payload

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class NotificationDispatcher:
    """Deliver alerts to the channels configured on their rule."""

    def __init__(
        self,
        store: CostLogStore,
        http_client: httpx.Client,
        local_notifier: LocalNotifier,
        email_relay_url: Optional[str] = None,
        executor: Optional[Executor] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the dispatcher.

        Args:
            store: Source of the Slack webhook configuration
            http_client: Client used for every outbound POST
            local_notifier: Host capability for local notifications
            email_relay_url: Endpoint that relays alert emails (email channel
                is skipped when unset)
            executor: Pool running deliveries. When omitted the dispatcher
                creates its own thread pool, which is only released by
                ``close()`` or by leaving a ``with`` block.
            clock: Source of the timestamps put in payloads
        """
        self.store = store
        self.http_client = http_client
        self.local_notifier = local_notifier
        self.email_relay_url = email_relay_url
        self.executor = executor or ThreadPoolExecutor(
            max_workers=DEFAULT_MAX_WORKERS, thread_name_prefix="costlog-notify"
        )
        self._clock = clock

    def dispatch(self, rule: AlertRule, alert: NewAlert) -> List[Future]:
        """Start delivery of ``alert`` on every channel of ``rule``.

        Returns:
            One future per started delivery; callers may ignore them
        """
        futures = []
        now = self._clock()

        if Channel.BROWSER in rule.channels:
            if self.local_notifier.can_notify():
                futures.append(self._submit(
                    "browser", self.local_notifier.show, alert.title, alert.message, rule.id
                ))
            else:
                LOGGER.debug("Local notifications not permitted, skipping rule %s", rule.id)

        if Channel.SLACK in rule.channels:
            slack = self.store.get_slack_config()
            if slack is not None and slack.enabled and slack.webhook_url:
                futures.append(self._submit(
                    "slack", self._post, slack.webhook_url, slack_payload(alert, now)
                ))
            else:
                LOGGER.debug("Slack channel requested by rule %s but not configured", rule.id)

        if Channel.EMAIL in rule.channels:
            emails = rule.recipient_values(RecipientType.EMAIL)
            if emails and self.email_relay_url:
                futures.append(self._submit(
                    "email", self._post, self.email_relay_url, email_payload(alert, emails)
                ))
            elif emails:
                LOGGER.debug("No email relay configured, skipping email for rule %s", rule.id)

        if Channel.WEBHOOK in rule.channels:
            for url in rule.recipient_values(RecipientType.WEBHOOK):
                futures.append(self._submit(
                    f"webhook {url}", self._post, url, webhook_payload(rule, alert, now)
                ))

        return futures

    def _submit(self, label: str, func: Callable[..., None], *args: Any) -> Future:
        return self.executor.submit(self._deliver, label, func, *args)

    def _deliver(self, label: str, func: Callable[..., None], *args: Any) -> None:
        try:
            func(*args)
            LOGGER.info("Delivered alert via %s", label)
        except httpx.HTTPError as e:
            LOGGER.error("Failed to send %s alert: %s", label, e)
        except Exception:
            LOGGER.exception("Unexpected error sending %s alert", label)

    def _post(self, url: str, payload: Dict[str, Any]) -> None:
        response = self.http_client.post(url, json=payload)
        response.raise_for_status()

    def close(self) -> None:
        """Wait for in-flight deliveries and release the pool."""
        self.executor.shutdown(wait=True)

    def __enter__(self) -> "NotificationDispatcher":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
