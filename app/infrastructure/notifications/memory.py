"""In-memory repository and user directory.

Reference implementations of the storage interfaces for local runs and
tests. Records are copied on the way in and out so callers never share
mutable state with the store.
"""

import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from infrastructure.logging import get_module_logger
from infrastructure.notifications.contracts import NotificationRepository, UserDirectory
from infrastructure.notifications.errors import (
    ConcurrentModificationError,
    NotificationNotFoundError,
)
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

logger = get_module_logger()


class InMemoryNotificationRepository(NotificationRepository):
    """Thread-safe dict-backed notification repository.

    The lock guards only the in-memory maps; no I/O happens while it is held.
    """

    def __init__(self):
        self._notifications: Dict[str, Notification] = {}
        self._preferences: Dict[str, NotificationPreferences] = {}
        self._lock = threading.Lock()

    def _require(self, notification_id: str) -> Notification:
        stored = self._notifications.get(notification_id)
        if stored is None:
            raise NotificationNotFoundError(notification_id)
        return stored

    def create(self, notification: Notification) -> Notification:
        with self._lock:
            self._notifications[notification.id] = notification.model_copy(deep=True)
        return notification.model_copy(deep=True)

    def get(self, notification_id: str) -> Optional[Notification]:
        with self._lock:
            stored = self._notifications.get(notification_id)
            return stored.model_copy(deep=True) if stored else None

    def record_delivery_outcomes(
        self,
        notification_id: str,
        outcomes: Sequence[DeliveryOutcome],
        status: NotificationStatus,
        expected_version: int,
        updated_at: datetime,
    ) -> Notification:
        with self._lock:
            stored = self._require(notification_id)
            if stored.delivery_version != expected_version:
                raise ConcurrentModificationError(
                    notification_id, expected_version, stored.delivery_version
                )
            updated = stored.model_copy(
                update={
                    "delivery_status": [*stored.delivery_status, *outcomes],
                    "status": status,
                    "delivery_version": stored.delivery_version + 1,
                    "updated_at": updated_at,
                },
                deep=True,
            )
            self._notifications[notification_id] = updated
            return updated.model_copy(deep=True)

    def claim_for_dispatch(
        self, notification_id: str, expected_version: int, claimed_at: datetime
    ) -> Notification:
        with self._lock:
            stored = self._require(notification_id)
            if (
                stored.delivery_version != expected_version
                or stored.status != NotificationStatus.PENDING
                or stored.dispatch_claimed_at is not None
            ):
                raise ConcurrentModificationError(
                    notification_id, expected_version, stored.delivery_version
                )
            claimed = stored.model_copy(
                update={
                    "dispatch_claimed_at": claimed_at,
                    "delivery_version": stored.delivery_version + 1,
                    "updated_at": claimed_at,
                }
            )
            self._notifications[notification_id] = claimed
            return claimed.model_copy(deep=True)

    def mark_read(self, notification_id: str, read_at: datetime) -> Notification:
        with self._lock:
            stored = self._require(notification_id)
            if not stored.is_read:
                stored = stored.model_copy(
                    update={"is_read": True, "read_at": read_at, "updated_at": read_at}
                )
                self._notifications[notification_id] = stored
            return stored.model_copy(deep=True)

    def mark_unread(self, notification_id: str, updated_at: datetime) -> Notification:
        with self._lock:
            stored = self._require(notification_id)
            if stored.is_read:
                stored = stored.model_copy(
                    update={"is_read": False, "read_at": None, "updated_at": updated_at}
                )
                self._notifications[notification_id] = stored
            return stored.model_copy(deep=True)

    def mark_all_read(self, user_id: str, read_at: datetime) -> int:
        changed = 0
        with self._lock:
            for notification_id, stored in self._notifications.items():
                if stored.recipient_id == user_id and not stored.is_read:
                    self._notifications[notification_id] = stored.model_copy(
                        update={"is_read": True, "read_at": read_at, "updated_at": read_at}
                    )
                    changed += 1
        return changed

    def unread_count(self, user_id: str) -> int:
        with self._lock:
            return sum(
                1
                for n in self._notifications.values()
                if n.recipient_id == user_id and not n.is_read
            )

    def query(
        self,
        user_id: Optional[str],
        filters: NotificationFilters,
        pagination: Optional[Pagination] = None,
    ) -> NotificationPage:
        with self._lock:
            snapshot = list(self._notifications.values())

        matches = _newest_first(
            n
            for n in snapshot
            if (user_id is None or n.recipient_id == user_id) and filters.matches(n)
        )
        if pagination is None:
            items = matches
            offset, limit = 0, max(len(matches), 1)
        else:
            offset, limit = pagination.offset, pagination.limit
            items = matches[offset : offset + limit]

        return NotificationPage(
            items=[n.model_copy(deep=True) for n in items],
            total=len(matches),
            offset=offset,
            limit=limit,
        )

    def delete(self, notification_id: str) -> bool:
        with self._lock:
            return self._notifications.pop(notification_id, None) is not None

    def delete_created_before(self, cutoff: datetime) -> int:
        with self._lock:
            expired = [
                notification_id
                for notification_id, n in self._notifications.items()
                if n.created_at < cutoff
            ]
            for notification_id in expired:
                del self._notifications[notification_id]
        return len(expired)

    def find_due_scheduled(self, now: datetime) -> List[Notification]:
        with self._lock:
            due = [
                n.model_copy(deep=True)
                for n in self._notifications.values()
                if n.status == NotificationStatus.PENDING
                and n.dispatch_claimed_at is None
                and n.scheduled_for is not None
                and n.scheduled_for <= now
            ]
        return sorted(due, key=lambda n: n.scheduled_for)

    def get_preferences(self, user_id: str) -> Optional[NotificationPreferences]:
        with self._lock:
            stored = self._preferences.get(user_id)
            return stored.model_copy(deep=True) if stored else None

    def update_preferences(
        self, user_id: str, preferences: NotificationPreferences
    ) -> NotificationPreferences:
        with self._lock:
            self._preferences[user_id] = preferences.model_copy(deep=True)
        logger.debug("preferences_stored", user_id=user_id)
        return preferences


def _newest_first(notifications: Iterable[Notification]) -> List[Notification]:
    return sorted(notifications, key=lambda n: n.created_at, reverse=True)


class InMemoryUserDirectory(UserDirectory):
    """Dict-backed user directory."""

    def __init__(self, recipients: Optional[Iterable[Recipient]] = None):
        self._recipients: Dict[str, Recipient] = {}
        for recipient in recipients or []:
            self.add(recipient)

    def add(self, recipient: Recipient) -> None:
        self._recipients[recipient.id] = recipient

    def find_by_id(self, user_id: str) -> Optional[Recipient]:
        return self._recipients.get(user_id)
