"""
JSON bodies posted to the outbound channels.
"""

from datetime import datetime
from typing import Any, Dict, List

from costlog.storage.models import AlertRule, NewAlert, Severity

WEBHOOK_EVENT = "alert.fired"

SEVERITY_COLORS = {
    Severity.CRITICAL: "#dc2626",
    Severity.WARNING: "#f59e0b",
    Severity.INFO: "#3b82f6",
}

SEVERITY_EMOJI = {
    Severity.CRITICAL: ":rotating_light:",
    Severity.WARNING: ":warning:",
    Severity.INFO: ":information_source:",
}


def slack_payload(alert: NewAlert, now: datetime) -> Dict[str, Any]:
    """Severity-coloured Slack attachment with a timestamp context line."""
    return {
        "attachments": [
            {
                "color": SEVERITY_COLORS[alert.severity],
                "blocks": [
                    {
                        "type": "section",
                        "text": {
                            "type": "mrkdwn",
                            "text": f"{SEVERITY_EMOJI[alert.severity]} *{alert.title}*\n{alert.message}",
                        },
                    },
                    {
                        "type": "context",
                        "elements": [
                            {
                                "type": "mrkdwn",
                                "text": f"CostLog • {now.strftime('%Y-%m-%d %H:%M:%S')}",
                            },
                        ],
                    },
                ],
            },
        ],
    }


def email_payload(alert: NewAlert, recipients: List[str]) -> Dict[str, Any]:
    return {"type": "email", "recipients": recipients, "alert": alert.to_dict()}


def webhook_payload(rule: AlertRule, alert: NewAlert, now: datetime) -> Dict[str, Any]:
    """Structured event envelope for generic webhooks."""
    return {
        "event": WEBHOOK_EVENT,
        "timestamp": now.isoformat(),
        "rule": {
            "id": rule.id,
            "name": rule.name,
            "triggerType": rule.trigger_type.value,
        },
        "alert": alert.to_dict(),
    }
