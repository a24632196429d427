"""Notifications - in-app notification store with an optional Slack channel.

Usage:
    from notifications import NotificationService, SlackNotifier, SlackConfig

    slack = SlackNotifier(SlackConfig(webhook_url=url)) if url else None
    service = NotificationService(db_path, slack=slack)
    event_bus.subscribe(service.handle_event)
"""

from notifications.db import init_notifications_db
from notifications.models import Notification, NotificationStatus, NotificationType, RelatedModel
from notifications.service import NotificationService
from notifications.slack import RetryConfig, SlackConfig, SlackNotifier

# __all__ = [
#     "Notification", "NotificationStatus", "NotificationType", "RelatedModel",
#     "NotificationService", "SlackNotifier", "SlackConfig", "RetryConfig",
#     "init_notifications_db",
# ]
