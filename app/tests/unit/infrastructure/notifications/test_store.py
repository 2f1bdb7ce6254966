"""Unit tests for NotificationStore and status derivation.

Tests cover:
- Status derivation from delivery history
- Creation and persistence error wrapping
- Optimistic concurrency on delivery updates
- Read-state ownership and idempotency
- Listing, deletion, purging and statistics
"""

import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from infrastructure.notifications.errors import (
    ConcurrentModificationError,
    NotificationNotFoundError,
    PersistenceError,
    UnauthorizedError,
)
from infrastructure.notifications.memory import InMemoryNotificationRepository
from infrastructure.notifications.models import (
    BoundContent,
    DeliveryOutcome,
    NotificationChannel,
    NotificationFilters,
    NotificationStatus,
    NotificationType,
    Pagination,
)
from infrastructure.notifications.store import NotificationStore, derive_status

IN_APP = NotificationChannel.IN_APP
EMAIL = NotificationChannel.EMAIL
PUSH = NotificationChannel.PUSH


def ok(channel):
    return DeliveryOutcome(channel=channel, success=True)


def fail(channel, error="boom"):
    return DeliveryOutcome(channel=channel, success=False, error=error)


@pytest.mark.unit
class TestDeriveStatus:
    """Tests for derive_status."""

    def test_no_outcomes_is_skipped(self):
        """No attempts means skipped."""
        assert derive_status([]) == NotificationStatus.SKIPPED

    def test_only_skip_records_is_skipped(self):
        """Skip records are not attempts."""
        skip = DeliveryOutcome(channel=IN_APP, success=False, skipped=True)

        assert derive_status([skip]) == NotificationStatus.SKIPPED

    def test_all_succeeded_is_sent(self):
        assert derive_status([ok(IN_APP), ok(EMAIL)]) == NotificationStatus.SENT

    def test_all_failed_is_failed(self):
        assert derive_status([fail(IN_APP), fail(EMAIL)]) == NotificationStatus.FAILED

    def test_mixed_is_partially_delivered(self):
        assert (
            derive_status([ok(IN_APP), fail(EMAIL)])
            == NotificationStatus.PARTIALLY_DELIVERED
        )

    def test_latest_attempt_per_channel_wins(self):
        """A successful retry supersedes the earlier failure on the same channel."""
        history = [ok(IN_APP), fail(EMAIL), ok(EMAIL)]

        assert derive_status(history) == NotificationStatus.SENT

    def test_failed_retry_keeps_partial(self):
        """A failed retry leaves the channel failed."""
        history = [ok(IN_APP), fail(EMAIL), fail(EMAIL, "again")]

        assert derive_status(history) == NotificationStatus.PARTIALLY_DELIVERED


@pytest.mark.unit
class TestCreate:
    """Tests for NotificationStore.create."""

    def test_create_persists_pending(self, store, repository, draft_factory, clock):
        """A created notification is pending, unread and stored."""
        notification = store.create(draft_factory())

        assert notification.id == "n-1"
        assert notification.status == NotificationStatus.PENDING
        assert notification.is_read is False
        assert notification.delivery_status == []
        assert notification.created_at == clock.now()
        assert repository.get("n-1") == notification

    def test_create_uses_bound_content(self, store, draft_factory):
        """Bound template content replaces the draft's text."""
        draft = draft_factory(title=None, message=None, template_id="inspection_overdue")

        notification = store.create(draft, BoundContent(title="T", message="M"))

        assert notification.title == "T"
        assert notification.message == "M"
        assert notification.template_id == "inspection_overdue"

    def test_create_without_text_rejected(self, store, draft_factory):
        """A template draft without bound content cannot be stored."""
        draft = draft_factory(title=None, message=None, template_id="inspection_overdue")

        with pytest.raises(ValueError):
            store.create(draft)

    def test_repository_failure_wrapped(self, clock, draft_factory):
        """Repository exceptions surface as PersistenceError with the cause."""
        repository = MagicMock()
        repository.create.side_effect = OSError("disk full")
        store = NotificationStore(repository, clock=clock)

        with pytest.raises(PersistenceError) as exc_info:
            store.create(draft_factory())

        assert isinstance(exc_info.value.__cause__, OSError)


@pytest.mark.unit
class TestRecordDeliveryOutcomes:
    """Tests for NotificationStore.record_delivery_outcomes."""

    def test_outcomes_appended_and_status_derived(self, store, draft_factory):
        """Outcomes are appended and the status recomputed."""
        created = store.create(draft_factory())

        updated = store.record_delivery_outcomes(created.id, [ok(IN_APP), fail(EMAIL)])

        assert updated.delivery_status == [ok(IN_APP), fail(EMAIL)]
        assert updated.status == NotificationStatus.PARTIALLY_DELIVERED
        assert updated.delivery_version == 1

    def test_later_outcomes_appended_not_replaced(self, store, draft_factory):
        """History is append-only across calls."""
        created = store.create(draft_factory())
        store.record_delivery_outcomes(created.id, [fail(EMAIL)])

        updated = store.record_delivery_outcomes(created.id, [ok(EMAIL)])

        assert updated.delivery_status == [fail(EMAIL), ok(EMAIL)]
        assert updated.status == NotificationStatus.SENT
        assert updated.delivery_version == 2

    def test_empty_outcomes_mark_skipped(self, store, draft_factory):
        """Recording nothing finalizes the notification as skipped."""
        created = store.create(draft_factory())

        updated = store.record_delivery_outcomes(created.id, [])

        assert updated.status == NotificationStatus.SKIPPED

    def test_unknown_notification_raises(self, store):
        with pytest.raises(NotificationNotFoundError):
            store.record_delivery_outcomes("missing", [ok(IN_APP)])

    def test_conflict_is_retried_without_losing_writes(self, clock, draft_factory):
        """A concurrent writer's outcomes survive and ours are re-applied."""

        class RacingRepository(InMemoryNotificationRepository):
            raced = False

            def record_delivery_outcomes(self, notification_id, outcomes, status, expected_version, updated_at):
                if not self.raced:
                    self.raced = True
                    super().record_delivery_outcomes(
                        notification_id, [ok(PUSH)], NotificationStatus.SENT,
                        expected_version, updated_at,
                    )
                return super().record_delivery_outcomes(
                    notification_id, outcomes, status, expected_version, updated_at
                )

        store = NotificationStore(RacingRepository(), clock=clock, id_factory=lambda: "n-1")
        created = store.create(draft_factory())

        updated = store.record_delivery_outcomes(created.id, [fail(EMAIL)])

        assert updated.delivery_status == [ok(PUSH), fail(EMAIL)]
        assert updated.status == NotificationStatus.PARTIALLY_DELIVERED
        assert updated.delivery_version == 2

    def test_persistent_conflicts_raise_persistence_error(self, clock, notification_factory):
        """Conflicts beyond max_attempts surface as PersistenceError."""
        repository = MagicMock()
        repository.get.return_value = notification_factory()
        repository.record_delivery_outcomes.side_effect = ConcurrentModificationError("n-1", 0, 1)
        store = NotificationStore(repository, clock=clock, max_attempts=3)

        with pytest.raises(PersistenceError):
            store.record_delivery_outcomes("n-1", [ok(IN_APP)])

        assert repository.record_delivery_outcomes.call_count == 3

    def test_concurrent_writers_never_clobber(self, repository, clock, draft_factory):
        """Parallel recorders all land in the history."""
        store = NotificationStore(repository, clock=clock, max_attempts=20)
        created = store.create(draft_factory())
        channels = [IN_APP, EMAIL, PUSH] * 4

        threads = [
            threading.Thread(
                target=store.record_delivery_outcomes, args=(created.id, [ok(channel)])
            )
            for channel in channels
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        final = store.get(created.id)
        assert len(final.delivery_status) == len(channels)
        assert final.delivery_version == len(channels)
        assert final.status == NotificationStatus.SENT


@pytest.mark.unit
class TestReadState:
    """Tests for read-state operations."""

    def test_mark_read_by_recipient(self, store, draft_factory, clock):
        created = store.create(draft_factory())

        updated = store.mark_read(created.id, "user-1")

        assert updated.is_read is True
        assert updated.read_at == clock.now()

    def test_mark_read_by_other_user_rejected(self, store, draft_factory):
        """Only the recipient may change read state."""
        created = store.create(draft_factory())

        with pytest.raises(UnauthorizedError):
            store.mark_read(created.id, "intruder")

        assert store.get(created.id).is_read is False

    def test_mark_read_twice_keeps_original_timestamp(self, store, draft_factory, clock):
        """Marking an already-read notification is a no-op."""
        created = store.create(draft_factory())
        first = store.mark_read(created.id, "user-1")
        clock.advance(hours=1)

        second = store.mark_read(created.id, "user-1")

        assert second.read_at == first.read_at

    def test_mark_read_does_not_touch_delivery_version(self, store, draft_factory):
        """Read state and delivery state are independent."""
        created = store.create(draft_factory())
        store.record_delivery_outcomes(created.id, [ok(IN_APP)])

        updated = store.mark_read(created.id, "user-1")

        assert updated.delivery_version == 1
        assert updated.status == NotificationStatus.SENT

    def test_mark_unread(self, store, draft_factory):
        created = store.create(draft_factory())
        store.mark_read(created.id, "user-1")

        updated = store.mark_unread(created.id, "user-1")

        assert updated.is_read is False
        assert updated.read_at is None

    def test_mark_all_read_counts_changes_once(self, store, draft_factory):
        """A repeated mark-all-read changes nothing."""
        for _ in range(3):
            store.create(draft_factory())
        store.create(draft_factory(recipient_id="user-2"))

        assert store.mark_all_read("user-1") == 3
        assert store.mark_all_read("user-1") == 0
        assert store.unread_count("user-1") == 0
        assert store.unread_count("user-2") == 1

    def test_mark_read_unknown_notification(self, store):
        with pytest.raises(NotificationNotFoundError):
            store.mark_read("missing", "user-1")


@pytest.mark.unit
class TestQueries:
    """Tests for listing, deletion, purge and statistics."""

    def test_list_filters_and_paginates(self, store, draft_factory, clock):
        """Listing returns the recipient's notifications newest first."""
        for i in range(5):
            store.create(draft_factory(title=f"Assigned {i}"))
            clock.advance(minutes=1)
        store.create(draft_factory(type=NotificationType.SYSTEM_ALERT, title="Alert"))
        store.create(draft_factory(recipient_id="user-2"))

        page = store.list(
            "user-1",
            NotificationFilters(type=NotificationType.INSPECTION_ASSIGNED),
            Pagination(offset=0, limit=2),
        )

        assert page.total == 5
        assert [n.title for n in page.items] == ["Assigned 4", "Assigned 3"]
        assert page.has_more is True

    def test_list_search_filter(self, store, draft_factory):
        store.create(draft_factory(title="Roof inspection"))
        store.create(draft_factory(title="Boiler inspection"))

        page = store.list("user-1", NotificationFilters(search="roof"))

        assert [n.title for n in page.items] == ["Roof inspection"]

    def test_delete_requires_ownership(self, store, draft_factory):
        created = store.create(draft_factory())

        with pytest.raises(UnauthorizedError):
            store.delete(created.id, "user-2")

        assert store.delete(created.id, "user-1") is True
        with pytest.raises(NotificationNotFoundError):
            store.get(created.id)

    def test_purge_older_than(self, store, draft_factory, clock):
        """Notifications older than the cutoff are removed."""
        old = store.create(draft_factory())
        clock.advance(days=100)
        recent = store.create(draft_factory())

        removed = store.purge_older_than(90)

        assert removed == 1
        assert store.repository.get(old.id) is None
        assert store.repository.get(recent.id) is not None

    def test_statistics(self, store, draft_factory):
        """Statistics aggregate status, read state and channel counts."""
        sent = store.create(draft_factory())
        store.record_delivery_outcomes(sent.id, [ok(IN_APP), ok(EMAIL)])
        partial = store.create(draft_factory(type=NotificationType.SYSTEM_ALERT))
        store.record_delivery_outcomes(partial.id, [ok(IN_APP), fail(EMAIL)])
        store.create(draft_factory())
        store.mark_read(sent.id, "user-1")

        stats = store.statistics("user-1")

        assert stats.total == 3
        assert stats.read == 1
        assert stats.unread == 2
        assert stats.by_status == {"sent": 1, "partially_delivered": 1, "pending": 1}
        assert stats.by_type == {"inspection_assigned": 2, "system_alert": 1}
        assert stats.by_channel["email"].attempted == 2
        assert stats.by_channel["email"].failed == 1
        assert stats.delivery_rate == 0.5
        assert stats.read_rate == pytest.approx(1 / 3)

    def test_statistics_empty(self, store):
        stats = store.statistics("nobody")

        assert stats.total == 0
        assert stats.delivery_rate == 0.0
        assert stats.read_rate == 0.0

    def test_find_due_scheduled(self, store, draft_factory, clock):
        """Only pending notifications whose time has come are due."""
        due = store.create(draft_factory(scheduled_for=clock.now() - timedelta(minutes=5)))
        store.create(draft_factory(scheduled_for=clock.now() + timedelta(hours=1)))
        store.create(draft_factory())

        assert [n.id for n in store.find_due_scheduled()] == [due.id]


@pytest.mark.unit
class TestClaimForDispatch:
    """Tests for NotificationStore.claim_for_dispatch."""

    def test_claim_pending(self, store, draft_factory, clock):
        created = store.create(draft_factory())

        claimed = store.claim_for_dispatch(created.id)

        assert claimed.dispatch_claimed_at == clock.now()
        assert claimed.status == NotificationStatus.PENDING

    def test_second_claim_returns_none(self, store, draft_factory):
        """A claimed notification cannot be claimed again."""
        created = store.create(draft_factory())
        store.claim_for_dispatch(created.id)

        assert store.claim_for_dispatch(created.id) is None

    def test_delivered_notification_not_claimable(self, store, draft_factory):
        created = store.create(draft_factory())
        store.record_delivery_outcomes(created.id, [ok(IN_APP)])

        assert store.claim_for_dispatch(created.id) is None

    def test_lost_race_returns_none(self, clock, draft_factory):
        """A version conflict on the claim means another worker won."""
        repository = InMemoryNotificationRepository()
        store = NotificationStore(repository, clock=clock)
        created = store.create(draft_factory())
        repository.claim_for_dispatch = MagicMock(
            side_effect=ConcurrentModificationError(created.id, 0, 1)
        )

        assert store.claim_for_dispatch(created.id) is None

    def test_repository_failure_wrapped(self, clock, draft_factory):
        repository = InMemoryNotificationRepository()
        store = NotificationStore(repository, clock=clock)
        created = store.create(draft_factory())
        repository.claim_for_dispatch = MagicMock(side_effect=OSError("disk full"))

        with pytest.raises(PersistenceError):
            store.claim_for_dispatch(created.id)

    def test_concurrent_claims_have_one_winner(self, repository, clock, draft_factory):
        store = NotificationStore(repository, clock=clock)
        created = store.create(draft_factory())
        barrier = threading.Barrier(8)
        results = []

        def claim():
            barrier.wait(timeout=5)
            results.append(store.claim_for_dispatch(created.id))

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for r in results if r is not None) == 1
