"""Preference resolution with a system default policy.

Users without stored preferences get the default policy. The default is
never written back: only an explicit ``update`` persists preferences.
"""

from typing import Optional

from infrastructure.logging import get_module_logger
from infrastructure.notifications.contracts import NotificationRepository
from infrastructure.notifications.errors import PreferencesUnavailableError
from infrastructure.notifications.models import (
    ChannelPreference,
    DeliveryFrequency,
    NotificationPreferences,
    NotificationType,
    QuietHours,
)

logger = get_module_logger()


def default_preferences(timezone: str = "UTC") -> NotificationPreferences:
    """Build the system default policy.

    Email for assignments and overdue inspections, push for assignments
    and due reminders, SMS off (overdue only once enabled), in-app for
    every type, quiet hours 22:00-08:00 and immediate delivery.

    Args:
        timezone: Timezone the quiet hours window is evaluated in.

    Returns:
        A fresh NotificationPreferences instance.
    """
    return NotificationPreferences(
        email=ChannelPreference(
            enabled=True,
            types={
                NotificationType.INSPECTION_ASSIGNED,
                NotificationType.INSPECTION_OVERDUE,
            },
        ),
        push=ChannelPreference(
            enabled=True,
            types={
                NotificationType.INSPECTION_ASSIGNED,
                NotificationType.INSPECTION_DUE_REMINDER,
            },
        ),
        sms=ChannelPreference(
            enabled=False,
            types={NotificationType.INSPECTION_OVERDUE},
        ),
        in_app=ChannelPreference(enabled=True, types=set(NotificationType)),
        quiet_hours=QuietHours(enabled=True, start="22:00", end="08:00", timezone=timezone),
        frequency=DeliveryFrequency(digest=False, immediate=True, batch_interval_minutes=60),
    )


class PreferenceResolver:
    """Loads effective preferences for a user.

    Args:
        repository: Preference storage
        default_timezone: Timezone for the default policy's quiet hours
    """

    def __init__(self, repository: NotificationRepository, default_timezone: str = "UTC"):
        self.repository = repository
        self.default_timezone = default_timezone

    def resolve(self, user_id: str) -> NotificationPreferences:
        """Return stored preferences or the default policy.

        Raises:
            PreferencesUnavailableError: The repository could not be read.
        """
        try:
            stored: Optional[NotificationPreferences] = self.repository.get_preferences(
                user_id
            )
        except Exception as e:
            raise PreferencesUnavailableError(user_id, cause=e) from e

        if stored is None:
            return default_preferences(self.default_timezone)
        return stored

    def resolve_or_default(self, user_id: str) -> NotificationPreferences:
        """Like ``resolve`` but falls back to the default policy on storage errors."""
        try:
            return self.resolve(user_id)
        except PreferencesUnavailableError as e:
            logger.warning(
                "preferences_unavailable_using_default",
                user_id=user_id,
                error=str(e.cause),
            )
            return default_preferences(self.default_timezone)

    def update(
        self, user_id: str, preferences: NotificationPreferences
    ) -> NotificationPreferences:
        saved = self.repository.update_preferences(user_id, preferences)
        logger.info("preferences_updated", user_id=user_id)
        return saved
