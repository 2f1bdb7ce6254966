"""Errors for the notification engine.

Delivery failures are never raised: they are recorded as DeliveryOutcome
entries. The exceptions below cover caller input errors and storage
problems.
"""

from typing import Optional


class NotificationError(Exception):
    """Base class for notification engine errors."""


class TemplateNotFoundError(NotificationError):
    """Raised when a template id is not present in the registry.

    Attributes:
        template_id: The unknown template id
    """

    def __init__(self, template_id: str):
        super().__init__(f"Template not found: {template_id}")
        self.template_id = template_id


class RecipientNotFoundError(NotificationError):
    """Raised when the user directory has no record for a recipient id."""

    def __init__(self, recipient_id: str):
        super().__init__(f"Recipient not found: {recipient_id}")
        self.recipient_id = recipient_id


class NotificationNotFoundError(NotificationError):
    """Raised when a notification id does not exist."""

    def __init__(self, notification_id: str):
        super().__init__(f"Notification not found: {notification_id}")
        self.notification_id = notification_id


class UnauthorizedError(NotificationError):
    """Raised when a user acts on a notification they do not own."""

    def __init__(self, user_id: str, notification_id: str):
        super().__init__(
            f"User {user_id} is not the recipient of notification {notification_id}"
        )
        self.user_id = user_id
        self.notification_id = notification_id


class RetryNotAllowedError(NotificationError):
    """Raised when retry_channel targets a channel without a failed attempt."""

    def __init__(self, notification_id: str, channel: str, reason: str):
        super().__init__(
            f"Cannot retry {channel} for notification {notification_id}: {reason}"
        )
        self.notification_id = notification_id
        self.channel = channel
        self.reason = reason


class PreferencesUnavailableError(NotificationError):
    """Raised when stored preferences cannot be read."""

    def __init__(self, user_id: str, cause: Optional[Exception] = None):
        super().__init__(f"Preferences unavailable for user {user_id}")
        self.user_id = user_id
        self.cause = cause


class PersistenceError(NotificationError):
    """Raised when the repository fails to create or update a notification."""


class ConcurrentModificationError(NotificationError):
    """Raised by a repository when an optimistic version check fails.

    Attributes:
        notification_id: Notification whose delivery state changed underneath
        expected_version: Version the writer based its update on
        actual_version: Version found in storage
    """

    def __init__(self, notification_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Notification {notification_id} changed: expected version "
            f"{expected_version}, found {actual_version}"
        )
        self.notification_id = notification_id
        self.expected_version = expected_version
        self.actual_version = actual_version
