"""
Local (on-device) notifications.

The host decides whether local notifications are allowed; the dispatcher only
asks ``can_notify()`` before calling ``show()``.
"""

import threading
from typing import Protocol, Set

from rich.console import Console
from rich.panel import Panel


class LocalNotifier(Protocol):
    """Capability for showing a notification on the user's machine."""

    def can_notify(self) -> bool:
        ...

    def show(self, title: str, body: str, tag: str) -> None:
        ...


class ConsoleNotifier:
    """Render notifications as panels on the terminal.

    Notifications sharing a ``tag`` collapse: a tag is shown once per
    notifier instance.
    """

    def __init__(self, console: Console, enabled: bool = True):
        self.console = console
        self.enabled = enabled
        self._shown_tags: Set[str] = set()
        self._lock = threading.Lock()

    def can_notify(self) -> bool:
        return self.enabled

    def show(self, title: str, body: str, tag: str) -> None:
        with self._lock:
            if tag in self._shown_tags:
                return
            self._shown_tags.add(tag)
        self.console.print(Panel(body, title=title, expand=False))


class NullNotifier:
    """Notifier for hosts without local notification support."""

    def can_notify(self) -> bool:
        return False

    def show(self, title: str, body: str, tag: str) -> None:
        pass
