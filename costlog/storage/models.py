"""
Data models for storage layer.

Defines the persisted entities: usage records, alert rules, fired alerts,
Slack configuration and the monthly budget. Records are stored as JSON with
camelCase keys; attributes are snake_case.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

LOGGER = logging.getLogger(__name__)


class Provider(Enum):
    """Upstream AI API vendor whose usage is tracked."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class TriggerType(Enum):
    """Condition category an alert rule checks."""
    SPEND_THRESHOLD = "spend_threshold"
    SPIKE = "spike"
    DAILY_LIMIT = "daily_limit"
    MODEL_LIMIT = "model_limit"


class Period(Enum):
    """Accounting period of an alert rule."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Channel(Enum):
    """Delivery mechanism for a fired alert."""
    EMAIL = "email"
    SLACK = "slack"
    WEBHOOK = "webhook"
    BROWSER = "browser"


class RecipientType(Enum):
    EMAIL = "email"
    SLACK = "slack"
    WEBHOOK = "webhook"


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertType(Enum):
    THRESHOLD = "threshold"
    BUDGET = "budget"


# Rule provider filter value meaning "every provider"
ALL_PROVIDERS = "all"


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"timestamp must be an ISO string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    # Timestamps are compared as naive local time throughout
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValueError(f"'{name}' must be a boolean, got {value!r}")


def _parse_period(value: Any) -> Period:
    if value is None:
        return Period.MONTHLY
    try:
        return Period(value)
    except (TypeError, ValueError):
        LOGGER.warning("Unknown rule period %r, treating it as monthly", value)
        return Period.MONTHLY


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class UsageRecord:
    """Immutable cost observation for one (date, provider, model[, project]).

    Records are produced by provider sync jobs and never modified once
    stored; inserts are a set-union keyed by ``id``.
    """
    id: str
    provider: Provider
    date: date
    model: str
    input_tokens: int
    output_tokens: int
    cost: float
    project_id: Optional[str] = None
    project_name: Optional[str] = None

    def __post_init__(self):
        """Validate record values are reasonable."""
        if not self.id:
            raise ValueError("id cannot be empty")
        if self.input_tokens < 0:
            raise ValueError("input_tokens cannot be negative")
        if self.output_tokens < 0:
            raise ValueError("output_tokens cannot be negative")
        if self.cost < 0:
            raise ValueError("cost cannot be negative")

    @property
    def tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input_tokens + self.output_tokens

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageRecord":
        return cls(
            id=str(data["id"]),
            provider=Provider(data["provider"]),
            # Accept full timestamps as well as plain calendar days
            date=date.fromisoformat(str(data["date"])[:10]),
            model=str(data["model"]),
            input_tokens=int(data.get("inputTokens", 0)),
            output_tokens=int(data.get("outputTokens", 0)),
            cost=float(data["cost"]),
            project_id=data.get("projectId"),
            project_name=data.get("projectName"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "provider": self.provider.value,
            "date": self.date.isoformat(),
            "model": self.model,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "cost": self.cost,
        }
        if self.project_id is not None:
            data["projectId"] = self.project_id
        if self.project_name is not None:
            data["projectName"] = self.project_name
        return data


@dataclass(frozen=True)
class Recipient:
    """Delivery target attached to an alert rule."""
    id: str
    type: RecipientType
    value: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recipient":
        return cls(
            id=str(data["id"]),
            type=RecipientType(data["type"]),
            value=str(data["value"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type.value, "value": self.value}


@dataclass
class AlertRule:
    """User-authored alerting policy.

    ``last_triggered`` is the only field the alert engine mutates; everything
    else is owned by the user. ``provider`` is either a ``Provider`` or
    ``ALL_PROVIDERS``.
    """
    id: str
    name: str
    trigger_type: TriggerType
    threshold: float
    period: Period = Period.MONTHLY
    enabled: bool = True
    provider: str = ALL_PROVIDERS
    model: Optional[str] = None
    channels: FrozenSet[Channel] = frozenset()
    recipients: Tuple[Recipient, ...] = ()
    last_triggered: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate rule values."""
        if not self.id:
            raise ValueError("rule id cannot be empty")
        if self.threshold < 0:
            raise ValueError("threshold cannot be negative")
        valid_providers = {p.value for p in Provider} | {ALL_PROVIDERS}
        if self.provider not in valid_providers:
            raise ValueError(f"provider must be one of: {sorted(valid_providers)}")

    def recipient_values(self, recipient_type: RecipientType) -> List[str]:
        """Return the values of all recipients of the given type, in order."""
        return [r.value for r in self.recipients if r.type == recipient_type]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlertRule":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            enabled=_parse_bool(data.get("enabled", True), "enabled"),
            trigger_type=TriggerType(data["triggerType"]),
            threshold=float(data["threshold"]),
            period=_parse_period(data.get("period")),
            provider=data.get("provider") or ALL_PROVIDERS,
            model=data.get("model") or None,
            channels=frozenset(Channel(c) for c in data.get("channels", [])),
            recipients=tuple(Recipient.from_dict(r) for r in data.get("recipients", [])),
            last_triggered=_parse_datetime(data.get("lastTriggered")),
            created_at=_parse_datetime(data.get("createdAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "triggerType": self.trigger_type.value,
            "threshold": self.threshold,
            "period": self.period.value,
            "provider": self.provider,
            "channels": sorted(c.value for c in self.channels),
            "recipients": [r.to_dict() for r in self.recipients],
        }
        if self.model is not None:
            data["model"] = self.model
        if self.last_triggered is not None:
            data["lastTriggered"] = _format_datetime(self.last_triggered)
        if self.created_at is not None:
            data["createdAt"] = _format_datetime(self.created_at)
        return data


@dataclass(frozen=True)
class NewAlert:
    """Alert content before the store assigns id, date and read state."""
    type: AlertType
    title: str
    message: str
    severity: Severity
    rule_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "severity": self.severity.value,
        }
        if self.rule_id is not None:
            data["ruleId"] = self.rule_id
        return data


@dataclass
class Alert:
    """A fired notification record. Only ``read`` is ever toggled."""
    id: str
    type: AlertType
    title: str
    message: str
    date: datetime
    severity: Severity
    read: bool = False
    rule_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Alert":
        if data.get("date") is None:
            raise ValueError("alert date is required")
        return cls(
            id=str(data["id"]),
            type=AlertType(data.get("type", AlertType.THRESHOLD.value)),
            title=str(data["title"]),
            message=str(data["message"]),
            date=_parse_datetime(data["date"]),
            severity=Severity(data.get("severity", Severity.INFO.value)),
            read=_parse_bool(data.get("read", False), "read"),
            rule_id=data.get("ruleId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "date": _format_datetime(self.date),
            "severity": self.severity.value,
            "read": self.read,
        }
        if self.rule_id is not None:
            data["ruleId"] = self.rule_id
        return data


@dataclass(frozen=True)
class SlackConfig:
    """Incoming-webhook configuration for the Slack channel."""
    webhook_url: str
    enabled: bool = True
    channel: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SlackConfig":
        return cls(
            webhook_url=str(data.get("webhookUrl", "")),
            enabled=_parse_bool(data.get("enabled", False), "enabled"),
            channel=data.get("channel"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"webhookUrl": self.webhook_url, "enabled": self.enabled}
        if self.channel is not None:
            data["channel"] = self.channel
        return data


@dataclass(frozen=True)
class Budget:
    """Monthly budget with a warning threshold expressed in percent."""
    monthly_limit: float
    alert_threshold: float = 80.0

    def __post_init__(self):
        if self.monthly_limit < 0:
            raise ValueError("monthly_limit cannot be negative")
        if not 0 < self.alert_threshold <= 100:
            raise ValueError("alert_threshold must be in (0, 100]")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Budget":
        return cls(
            monthly_limit=float(data["monthlyLimit"]),
            alert_threshold=float(data.get("alertThreshold", 80.0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"monthlyLimit": self.monthly_limit, "alertThreshold": self.alert_threshold}
