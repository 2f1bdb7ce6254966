"""Channel selection policy.

Pure functions: the result depends only on the arguments, and ``now`` is
the only notion of time.
"""

from datetime import datetime, time, timezone
from typing import List

import pytz

from infrastructure.notifications.models import (
    CHANNEL_ORDER,
    NotificationChannel,
    NotificationPreferences,
    NotificationPriority,
    NotificationType,
    QuietHours,
)

# SMS is a cost-bearing channel and is reserved for urgent notifications
SMS_PRIORITIES = frozenset({NotificationPriority.HIGH, NotificationPriority.CRITICAL})


def _parse_time_of_day(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def is_within_quiet_hours(quiet_hours: QuietHours, now: datetime) -> bool:
    """Check whether ``now`` falls inside the quiet hours window.

    The window is ``[start, end)`` in the configured timezone. When
    ``start > end`` it wraps past midnight. ``start == end`` is empty.

    Args:
        quiet_hours: The user's quiet hours settings
        now: Current instant; naive values are treated as UTC

    Returns:
        True if quiet hours are enabled and ``now`` is inside the window.
    """
    if not quiet_hours.enabled:
        return False

    start = _parse_time_of_day(quiet_hours.start)
    end = _parse_time_of_day(quiet_hours.end)
    if start == end:
        return False

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(pytz.timezone(quiet_hours.timezone)).time().replace(
        second=0, microsecond=0
    )

    if start < end:
        return start <= local < end
    return local >= start or local < end


def select_channels(
    notification_type: NotificationType,
    priority: NotificationPriority,
    preferences: NotificationPreferences,
    now: datetime,
) -> List[NotificationChannel]:
    """Select delivery channels for one notification.

    Rules:
    - A channel is selected when enabled and allowing the type.
    - SMS additionally requires HIGH or CRITICAL priority.
    - During quiet hours only in-app remains, unless priority is CRITICAL.

    Args:
        notification_type: Type of the notification
        priority: Priority of the notification
        preferences: Effective preferences of the recipient
        now: Current instant

    Returns:
        Channels in the fixed order in_app, email, push, sms. An empty
        list means the notification is skipped.
    """
    selected = []
    for channel in CHANNEL_ORDER:
        if not preferences.for_channel(channel).allows(notification_type):
            continue
        if channel == NotificationChannel.SMS and priority not in SMS_PRIORITIES:
            continue
        selected.append(channel)

    if priority != NotificationPriority.CRITICAL and is_within_quiet_hours(
        preferences.quiet_hours, now
    ):
        selected = [c for c in selected if c == NotificationChannel.IN_APP]

    return selected
