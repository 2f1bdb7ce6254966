"""Notification store coordinator.

Owns persistence rules on top of a NotificationRepository:
- notifications are created PENDING and their status is only ever derived
  from recorded delivery outcomes
- delivery outcomes are appended under optimistic concurrency on
  ``delivery_version``, retrying on conflict
- a PENDING notification is claimed by exactly one worker before delivery
- read state can only be changed by the recipient
"""

import uuid
from collections import Counter
from datetime import timedelta
from typing import Callable, Iterable, List, Optional, Sequence

from infrastructure.logging import get_module_logger
from infrastructure.notifications.contracts import Clock, NotificationRepository, SystemClock
from infrastructure.notifications.errors import (
    ConcurrentModificationError,
    NotificationError,
    NotificationNotFoundError,
    PersistenceError,
    UnauthorizedError,
)
from infrastructure.notifications.models import (
    BoundContent,
    ChannelStatistics,
    DeliveryOutcome,
    Notification,
    NotificationDraft,
    NotificationFilters,
    NotificationPage,
    NotificationStatistics,
    NotificationStatus,
    Pagination,
)

logger = get_module_logger()

ATTEMPTED_STATUSES = frozenset(
    {
        NotificationStatus.SENT,
        NotificationStatus.PARTIALLY_DELIVERED,
        NotificationStatus.FAILED,
    }
)


def derive_status(outcomes: Iterable[DeliveryOutcome]) -> NotificationStatus:
    """Derive the aggregate status from a delivery history.

    Only the latest attempt per channel counts, so a successful retry
    supersedes the earlier failure. Skip records are not attempts.

    Args:
        outcomes: Full delivery history, oldest first

    Returns:
        SKIPPED with no attempts, SENT when every channel's latest attempt
        succeeded, FAILED when all failed, otherwise PARTIALLY_DELIVERED.
    """
    latest = {}
    for outcome in outcomes:
        if not outcome.skipped:
            latest[outcome.channel] = outcome

    if not latest:
        return NotificationStatus.SKIPPED

    succeeded = sum(1 for outcome in latest.values() if outcome.success)
    if succeeded == len(latest):
        return NotificationStatus.SENT
    if succeeded == 0:
        return NotificationStatus.FAILED
    return NotificationStatus.PARTIALLY_DELIVERED


class NotificationStore:
    """Coordinates notification persistence and read state.

    Args:
        repository: Storage backend
        clock: Time source
        max_attempts: Attempts for an optimistic delivery update before
            giving up with PersistenceError
        id_factory: Generator of notification ids
    """

    def __init__(
        self,
        repository: NotificationRepository,
        clock: Optional[Clock] = None,
        max_attempts: int = 5,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.repository = repository
        self.clock = clock or SystemClock()
        self.max_attempts = max_attempts
        self.id_factory = id_factory

    def create(
        self, draft: NotificationDraft, content: Optional[BoundContent] = None
    ) -> Notification:
        """Persist a new PENDING notification.

        Args:
            draft: Notification draft
            content: Bound template content, overriding the draft's title/message

        Returns:
            The stored notification

        Raises:
            ValueError: Neither bound content nor a title/message is available.
            PersistenceError: The repository failed.
        """
        title = content.title if content else draft.title
        message = content.message if content else draft.message
        if not title or not message:
            raise ValueError("A notification needs a title and a message")

        now = self.clock.now()
        notification = Notification(
            id=self.id_factory(),
            type=draft.type,
            priority=draft.priority,
            recipient_id=draft.recipient_id,
            sender_id=draft.sender_id,
            title=title,
            message=message,
            template_id=draft.template_id,
            entity_type=draft.entity_type,
            entity_id=draft.entity_id,
            action_url=draft.action_url,
            data=dict(draft.data),
            status=NotificationStatus.PENDING,
            created_at=now,
            updated_at=now,
            scheduled_for=draft.scheduled_for,
            expires_at=draft.expires_at,
        )

        try:
            stored = self.repository.create(notification)
        except NotificationError:
            raise
        except Exception as e:
            logger.error(
                "notification_create_failed",
                recipient_id=draft.recipient_id,
                error=str(e),
            )
            raise PersistenceError(f"Failed to create notification: {e}") from e

        logger.info(
            "notification_created",
            notification_id=stored.id,
            recipient_id=stored.recipient_id,
            type=stored.type.value,
            priority=stored.priority.value,
        )
        return stored

    def get(
        self, notification_id: str, requesting_user_id: Optional[str] = None
    ) -> Notification:
        """Return a notification, checking ownership when a user is given.

        Raises:
            NotificationNotFoundError: Unknown id.
            UnauthorizedError: ``requesting_user_id`` is not the recipient.
        """
        notification = self.repository.get(notification_id)
        if notification is None:
            raise NotificationNotFoundError(notification_id)
        if requesting_user_id is not None and notification.recipient_id != requesting_user_id:
            raise UnauthorizedError(requesting_user_id, notification_id)
        return notification

    def record_delivery_outcomes(
        self, notification_id: str, outcomes: Sequence[DeliveryOutcome]
    ) -> Notification:
        """Append delivery outcomes and recompute the status.

        Reads the current record, derives the new status from the full
        history and writes conditionally on the version read. On a version
        conflict the read-derive-write cycle is repeated.

        Args:
            notification_id: Notification to update
            outcomes: New outcomes; may be empty to finalize a skip

        Returns:
            The updated notification

        Raises:
            NotificationNotFoundError: Unknown id.
            PersistenceError: The repository failed or conflicts persisted
                for ``max_attempts`` attempts.
        """
        outcomes = list(outcomes)
        for attempt in range(1, self.max_attempts + 1):
            current = self.get(notification_id)
            status = derive_status([*current.delivery_status, *outcomes])
            try:
                updated = self.repository.record_delivery_outcomes(
                    notification_id,
                    outcomes,
                    status,
                    expected_version=current.delivery_version,
                    updated_at=self.clock.now(),
                )
            except ConcurrentModificationError as e:
                logger.debug(
                    "delivery_update_conflict",
                    notification_id=notification_id,
                    attempt=attempt,
                    expected_version=e.expected_version,
                    actual_version=e.actual_version,
                )
                continue
            except NotificationError:
                raise
            except Exception as e:
                logger.error(
                    "delivery_update_failed",
                    notification_id=notification_id,
                    error=str(e),
                )
                raise PersistenceError(
                    f"Failed to record delivery outcomes for {notification_id}: {e}"
                ) from e

            logger.info(
                "delivery_outcomes_recorded",
                notification_id=notification_id,
                status=updated.status.value,
                outcome_count=len(outcomes),
            )
            return updated

        logger.error(
            "delivery_update_conflicts_exhausted",
            notification_id=notification_id,
            max_attempts=self.max_attempts,
        )
        raise PersistenceError(
            f"Delivery update for {notification_id} conflicted "
            f"{self.max_attempts} times"
        )

    def claim_for_dispatch(self, notification_id: str) -> Optional[Notification]:
        """Take a PENDING notification for delivery.

        Returns:
            The claimed notification, or None when it is no longer pending
            or another worker claimed it first.

        Raises:
            NotificationNotFoundError: Unknown id.
            PersistenceError: The repository failed.
        """
        current = self.get(notification_id)
        if (
            current.status != NotificationStatus.PENDING
            or current.dispatch_claimed_at is not None
        ):
            return None

        try:
            return self.repository.claim_for_dispatch(
                notification_id,
                expected_version=current.delivery_version,
                claimed_at=self.clock.now(),
            )
        except ConcurrentModificationError:
            logger.info("dispatch_claim_lost", notification_id=notification_id)
            return None
        except NotificationError:
            raise
        except Exception as e:
            logger.error(
                "dispatch_claim_failed",
                notification_id=notification_id,
                error=str(e),
            )
            raise PersistenceError(f"Failed to claim notification {notification_id}: {e}") from e

    def mark_read(self, notification_id: str, requesting_user_id: str) -> Notification:
        """Mark a notification as read by its recipient.

        Marking an already-read notification is a no-op and keeps the
        original ``read_at``.

        Raises:
            NotificationNotFoundError: Unknown id.
            UnauthorizedError: The user is not the recipient.
        """
        notification = self.get(notification_id, requesting_user_id)
        if notification.is_read:
            return notification
        return self.repository.mark_read(notification_id, self.clock.now())

    def mark_unread(self, notification_id: str, requesting_user_id: str) -> Notification:
        notification = self.get(notification_id, requesting_user_id)
        if not notification.is_read:
            return notification
        return self.repository.mark_unread(notification_id, self.clock.now())

    def mark_all_read(self, user_id: str) -> int:
        """Mark all of a user's unread notifications as read.

        Returns:
            Number of notifications that changed state
        """
        count = self.repository.mark_all_read(user_id, self.clock.now())
        logger.info("notifications_marked_read", user_id=user_id, count=count)
        return count

    def unread_count(self, user_id: str) -> int:
        return self.repository.unread_count(user_id)

    def list(
        self,
        user_id: str,
        filters: Optional[NotificationFilters] = None,
        pagination: Optional[Pagination] = None,
    ) -> NotificationPage:
        return self.repository.query(
            user_id, filters or NotificationFilters(), pagination or Pagination()
        )

    def delete(self, notification_id: str, requesting_user_id: str) -> bool:
        self.get(notification_id, requesting_user_id)
        deleted = self.repository.delete(notification_id)
        logger.info(
            "notification_deleted",
            notification_id=notification_id,
            deleted=deleted,
        )
        return deleted

    def purge_older_than(self, days: int) -> int:
        """Delete notifications created more than ``days`` days ago.

        Returns:
            Number of notifications removed
        """
        cutoff = self.clock.now() - timedelta(days=days)
        removed = self.repository.delete_created_before(cutoff)
        logger.info("notifications_purged", cutoff=cutoff.isoformat(), removed=removed)
        return removed

    def find_due_scheduled(self) -> List[Notification]:
        return self.repository.find_due_scheduled(self.clock.now())

    def statistics(
        self,
        user_id: Optional[str] = None,
        filters: Optional[NotificationFilters] = None,
    ) -> NotificationStatistics:
        """Aggregate counts over matching notifications.

        Args:
            user_id: Restrict to one recipient, or None for all
            filters: Optional filters

        Returns:
            NotificationStatistics
        """
        page = self.repository.query(user_id, filters or NotificationFilters())
        return summarize(page.items)


def summarize(notifications: Sequence[Notification]) -> NotificationStatistics:
    total = len(notifications)
    read = sum(1 for n in notifications if n.is_read)
    by_status = Counter(n.status.value for n in notifications)
    by_channel: dict[str, ChannelStatistics] = {}

    for n in notifications:
        for outcome in n.delivery_status:
            if outcome.skipped:
                continue
            stats = by_channel.setdefault(outcome.channel.value, ChannelStatistics())
            stats.attempted += 1
            if outcome.success:
                stats.succeeded += 1
            else:
                stats.failed += 1

    attempted = sum(1 for n in notifications if n.status in ATTEMPTED_STATUSES)
    sent = by_status.get(NotificationStatus.SENT.value, 0)

    return NotificationStatistics(
        total=total,
        read=read,
        unread=total - read,
        by_status=dict(by_status),
        by_type=dict(Counter(n.type.value for n in notifications)),
        by_priority=dict(Counter(n.priority.value for n in notifications)),
        by_channel=by_channel,
        delivery_rate=sent / attempted if attempted else 0.0,
        read_rate=read / total if total else 0.0,
    )
