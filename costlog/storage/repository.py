"""
Repository pattern for data access.

A small key-value layer (SQLite or in-memory) holds one JSON document per
collection. ``CostLogStore`` turns those documents into typed records and
implements the collection semantics: set-union usage inserts, rule upserts,
and the capped newest-first alert list.
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, TypeVar

from .cache import TTLCache
from .db import DEFAULT_DB_PATH, get_connection, initialize_schema
from .models import Alert, AlertRule, Budget, NewAlert, SlackConfig, UsageRecord

LOGGER = logging.getLogger(__name__)

KEYS = {
    "usage": "costlog-usage",
    "alert_rules": "costlog-alert-rules",
    "alerts": "costlog-alerts",
    "slack": "costlog-slack-config",
    "budget": "costlog-budget",
}

# Alert history is a ring buffer of the most recent entries
MAX_ALERTS = 50

T = TypeVar("T")


class KeyValueBackend(Protocol):
    """Raw string storage consumed by ``CostLogStore``."""

    def get(self, key: str) -> Optional[str]:
        ...

    def save(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class SQLiteKeyValueStore:
    """Key-value backend persisted in the ``kv`` table of a SQLite file."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the backend, creating the schema if needed.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        initialize_schema(db_path)

    def get(self, key: str) -> Optional[str]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def save(self, key: str, value: str) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = excluded.updated_at
                """,
                (key, value, datetime.now().isoformat()),
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def remove(self, key: str) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()


class MemoryKeyValueStore:
    """Process-local backend, used by tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def save(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class CostLogStore:
    """Typed access to usage, alert rules, alerts and settings.

    Malformed persisted state never raises: an unreadable document is treated
    as empty and an unparsable record is skipped, both with a warning.
    """

    def __init__(self, backend: KeyValueBackend, cache: Optional[TTLCache] = None):
        self.backend = backend
        self.cache = cache if cache is not None else TTLCache(ttl_seconds=0)

    # -- raw documents -----------------------------------------------------

    def _read(self, key: str) -> Any:
        raw = self.cache.get_or_load(key, lambda: self.backend.get(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            LOGGER.warning("Ignoring malformed data under %s: %s", key, e)
            return None

    def _write(self, key: str, value: Any) -> None:
        self.backend.save(key, json.dumps(value))
        self.cache.invalidate(key)

    def _remove(self, key: str) -> None:
        self.backend.remove(key)
        self.cache.invalidate(key)

    def _read_list(self, key: str, parse: Callable[[Dict[str, Any]], T]) -> List[T]:
        data = self._read(key)
        if not isinstance(data, list):
            if data is not None:
                LOGGER.warning("Expected a list under %s, got %s", key, type(data).__name__)
            return []
        items = []
        for i, item in enumerate(data):
            try:
                items.append(parse(item))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                LOGGER.warning("Skipping invalid entry %d under %s: %s", i, key, e)
        return items

    # -- usage -------------------------------------------------------------

    def get_usage(self) -> List[UsageRecord]:
        return self._read_list(KEYS["usage"], UsageRecord.from_dict)

    def save_usage(self, records: Iterable[UsageRecord]) -> int:
        """Add records whose ids are not stored yet; existing ids are kept as-is.

        Returns:
            Number of records actually added
        """
        existing = self.get_usage()
        seen = {r.id for r in existing}
        added = []
        for record in records:
            if record.id in seen:
                continue
            seen.add(record.id)
            added.append(record)
        if added:
            self._write(KEYS["usage"], [r.to_dict() for r in existing + added])
        return len(added)

    def clear_usage(self) -> None:
        self._write(KEYS["usage"], [])

    # -- alert rules -------------------------------------------------------

    def get_alert_rules(self) -> List[AlertRule]:
        return self._read_list(KEYS["alert_rules"], AlertRule.from_dict)

    def save_alert_rule(self, rule: AlertRule) -> None:
        """Insert or replace a rule by id."""
        rules = self.get_alert_rules()
        for i, existing in enumerate(rules):
            if existing.id == rule.id:
                rules[i] = rule
                break
        else:
            rules.append(rule)
        self._write(KEYS["alert_rules"], [r.to_dict() for r in rules])

    def remove_alert_rule(self, rule_id: str) -> None:
        rules = [r for r in self.get_alert_rules() if r.id != rule_id]
        self._write(KEYS["alert_rules"], [r.to_dict() for r in rules])

    def update_alert_rule_last_triggered(self, rule_id: str, when: Optional[datetime] = None) -> None:
        rules = self.get_alert_rules()
        for rule in rules:
            if rule.id == rule_id:
                rule.last_triggered = when or datetime.now()
        self._write(KEYS["alert_rules"], [r.to_dict() for r in rules])

    # -- alerts ------------------------------------------------------------

    def get_alerts(self) -> List[Alert]:
        """Return stored alerts, newest first."""
        return self._read_list(KEYS["alerts"], Alert.from_dict)

    def add_alert(self, new_alert: NewAlert, now: Optional[datetime] = None) -> Alert:
        """Record a fired alert and evict the oldest beyond ``MAX_ALERTS``."""
        alert = Alert(
            id=uuid.uuid4().hex,
            type=new_alert.type,
            title=new_alert.title,
            message=new_alert.message,
            date=now or datetime.now(),
            severity=new_alert.severity,
            read=False,
            rule_id=new_alert.rule_id,
        )
        alerts = [alert] + self.get_alerts()
        self._write(KEYS["alerts"], [a.to_dict() for a in alerts[:MAX_ALERTS]])
        return alert

    def mark_alert_read(self, alert_id: str) -> bool:
        """Mark one alert read. Returns False when no alert has that id."""
        alerts = self.get_alerts()
        found = False
        for alert in alerts:
            if alert.id == alert_id:
                alert.read = True
                found = True
        if found:
            self._write(KEYS["alerts"], [a.to_dict() for a in alerts])
        return found

    def mark_all_alerts_read(self) -> None:
        alerts = self.get_alerts()
        for alert in alerts:
            alert.read = True
        self._write(KEYS["alerts"], [a.to_dict() for a in alerts])

    def clear_alerts(self) -> None:
        self._remove(KEYS["alerts"])

    # -- settings ----------------------------------------------------------

    def get_slack_config(self) -> Optional[SlackConfig]:
        data = self._read(KEYS["slack"])
        if not isinstance(data, dict):
            return None
        try:
            return SlackConfig.from_dict(data)
        except (TypeError, ValueError) as e:
            LOGGER.warning("Ignoring invalid Slack config: %s", e)
            return None

    def save_slack_config(self, config: SlackConfig) -> None:
        self._write(KEYS["slack"], config.to_dict())

    def get_budget(self) -> Optional[Budget]:
        data = self._read(KEYS["budget"])
        if not isinstance(data, dict):
            return None
        try:
            return Budget.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            LOGGER.warning("Ignoring invalid budget: %s", e)
            return None

    def save_budget(self, budget: Budget) -> None:
        self._write(KEYS["budget"], budget.to_dict())


def open_store(db_path: str = DEFAULT_DB_PATH, cache_ttl_seconds: float = 5.0) -> CostLogStore:
    """Build a SQLite-backed store with a read cache.

    Args:
        db_path: Path to SQLite database file
        cache_ttl_seconds: Lifetime of cached reads (0 disables the cache)

    Returns:
        A ready-to-use CostLogStore
    """
    return CostLogStore(SQLiteKeyValueStore(db_path), TTLCache(ttl_seconds=cache_ttl_seconds))
