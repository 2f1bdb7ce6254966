"""Interfaces the notification engine depends on.

Persistence, the user directory and the clock are injected so the engine
can run against any storage backend and be tested deterministically.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from infrastructure.notifications.models import (
    DeliveryOutcome,
    Notification,
    NotificationFilters,
    NotificationPage,
    NotificationPreferences,
    NotificationStatus,
    Pagination,
    Recipient,
)


class NotificationRepository(ABC):
    """Storage for notifications and user preferences.

    Implementations must make ``record_delivery_outcomes`` a conditional
    write on ``expected_version`` and ``mark_all_read`` a conditional
    update on ``is_read == False``.
    """

    @abstractmethod
    def create(self, notification: Notification) -> Notification:
        """Persist a new notification and return the stored record."""

    @abstractmethod
    def get(self, notification_id: str) -> Optional[Notification]:
        """Return a notification by id, or None."""

    @abstractmethod
    def record_delivery_outcomes(
        self,
        notification_id: str,
        outcomes: Sequence[DeliveryOutcome],
        status: NotificationStatus,
        expected_version: int,
        updated_at: datetime,
    ) -> Notification:
        """Append outcomes and set status if the delivery version matches.

        Args:
            notification_id: Notification to update
            outcomes: Outcomes to append, in order
            status: Status derived from the full outcome list
            expected_version: ``delivery_version`` the caller read
            updated_at: Timestamp of the update

        Returns:
            The updated notification, with ``delivery_version`` incremented.

        Raises:
            ConcurrentModificationError: The stored version differs.
            NotificationNotFoundError: The notification does not exist.
        """

    @abstractmethod
    def claim_for_dispatch(
        self, notification_id: str, expected_version: int, claimed_at: datetime
    ) -> Notification:
        """Mark an unclaimed PENDING notification as taken for delivery.

        Only one caller can claim a given notification.

        Returns:
            The claimed notification, with ``delivery_version`` incremented.

        Raises:
            ConcurrentModificationError: The stored version differs, or the
                notification is no longer pending and unclaimed.
            NotificationNotFoundError: The notification does not exist.
        """

    @abstractmethod
    def mark_read(self, notification_id: str, read_at: datetime) -> Notification:
        """Set ``is_read`` and ``read_at``. Does not change ``delivery_version``."""

    @abstractmethod
    def mark_unread(self, notification_id: str, updated_at: datetime) -> Notification:
        """Clear ``is_read`` and ``read_at``."""

    @abstractmethod
    def mark_all_read(self, user_id: str, read_at: datetime) -> int:
        """Mark every unread notification of a user as read.

        Returns:
            Number of notifications that changed from unread to read.
        """

    @abstractmethod
    def unread_count(self, user_id: str) -> int:
        """Count unread notifications for a user."""

    @abstractmethod
    def query(
        self,
        user_id: Optional[str],
        filters: NotificationFilters,
        pagination: Optional[Pagination] = None,
    ) -> NotificationPage:
        """Return matching notifications, newest first.

        Args:
            user_id: Restrict to this recipient, or None for all recipients
            filters: Filters to apply
            pagination: Page to return; None returns every match
        """

    @abstractmethod
    def delete(self, notification_id: str) -> bool:
        """Delete a notification. Returns False when it did not exist."""

    @abstractmethod
    def delete_created_before(self, cutoff: datetime) -> int:
        """Delete notifications created before ``cutoff``. Returns the count."""

    @abstractmethod
    def find_due_scheduled(self, now: datetime) -> List[Notification]:
        """Return unclaimed pending notifications scheduled at or before ``now``."""

    @abstractmethod
    def get_preferences(self, user_id: str) -> Optional[NotificationPreferences]:
        """Return stored preferences, or None when the user has none."""

    @abstractmethod
    def update_preferences(
        self, user_id: str, preferences: NotificationPreferences
    ) -> NotificationPreferences:
        """Persist preferences for a user."""


class UserDirectory(ABC):
    """Lookup of recipient contact details."""

    @abstractmethod
    def find_by_id(self, user_id: str) -> Optional[Recipient]:
        """Return the recipient record, or None if the user is unknown."""


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock that returns a settable instant."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance(self, **delta) -> None:
        self.instant = self.instant + timedelta(**delta)
