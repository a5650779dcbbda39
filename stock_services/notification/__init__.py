"""Return notification: channels, recipients, rendering, dispatch."""

from stock_services.notification.channels import (
    LoggingChannel,
    MessageChannel,
    SmtpChannel,
    build_channel,
)
from stock_services.notification.dispatcher import DispatchResult, NotificationDispatcher
from stock_services.notification.notifier import BackgroundNotifier, InlineNotifier
from stock_services.notification.recipients import (
    RecipientDirectory,
    StaticRecipientDirectory,
)
from stock_services.notification.rendering import render_return_summary, render_subject

__all__ = [
    "BackgroundNotifier",
    "DispatchResult",
    "InlineNotifier",
    "LoggingChannel",
    "MessageChannel",
    "NotificationDispatcher",
    "RecipientDirectory",
    "SmtpChannel",
    "StaticRecipientDirectory",
    "build_channel",
    "render_return_summary",
    "render_subject",
]
