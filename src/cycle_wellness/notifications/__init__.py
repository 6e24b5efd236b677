"""In-app notifications."""

from cycle_wellness.notifications.period import (
    PERIOD_REMINDER,
    check_period_notifications,
    list_notifications,
    mark_read,
    reminder_for,
)

__all__ = [
    "PERIOD_REMINDER",
    "check_period_notifications",
    "list_notifications",
    "mark_read",
    "reminder_for",
]
