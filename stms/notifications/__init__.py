"""Notification channel abstraction layer."""

from stms.notifications.channels import NotificationChannel
from stms.notifications.email_channel import EmailChannel
from stms.notifications.notifyx_channel import NotifyXChannel
from stms.notifications.router import DispatchReport, NotificationRouter
from stms.notifications.webhook_channel import WebhookChannel

__all__ = [
    "DispatchReport",
    "EmailChannel",
    "NotificationChannel",
    "NotificationRouter",
    "NotifyXChannel",
    "WebhookChannel",
]
