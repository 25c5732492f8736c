"""
Notifications module - notification requests and the sinks that deliver them.
"""

from gdpt.modules.notifications.models import Notification, NotificationType

__all__ = ["Notification", "NotificationType"]
