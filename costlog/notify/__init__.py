"""
Notification channels for fired alerts.

Provides the multi-channel dispatcher and the local notification capability.
"""

from .dispatcher import NotificationDispatcher
from .local import ConsoleNotifier, LocalNotifier, NullNotifier

__all__ = ["NotificationDispatcher", "ConsoleNotifier", "LocalNotifier", "NullNotifier"]
