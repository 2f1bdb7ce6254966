"""Notification service: the single-notification delivery pipeline.

Flow for ``send``:
    recipient lookup -> preferences -> template binding -> create (PENDING)
    -> claim -> channel selection -> dispatch -> record outcomes

Scheduled notifications and digest-deferred notifications stop after
create and stay PENDING until ``dispatch_pending``/``dispatch_due`` runs.

Usage Example:
    service = NotificationService(
        repository=InMemoryNotificationRepository(),
        directory=directory,
        dispatcher=DeliveryDispatcher(senders=[...]),
    )

    notification = service.send_template(
        "inspection_overdue",
        recipient_id="user-1",
        variables={"inspection_name": "Fire Exits", "days_overdue": 3},
        priority=NotificationPriority.CRITICAL,
    )
"""

from datetime import datetime
from typing import Any, List, Mapping, Optional

from infrastructure.configuration import NotificationSettings
from infrastructure.logging import get_module_logger
from infrastructure.notifications.contracts import (
    Clock,
    NotificationRepository,
    UserDirectory,
)
from infrastructure.notifications.dispatcher import DeliveryDispatcher
from infrastructure.notifications.errors import (
    NotificationError,
    RecipientNotFoundError,
    RetryNotAllowedError,
)
from infrastructure.notifications.models import (
    DeliveryOutcome,
    Notification,
    NotificationChannel,
    NotificationDraft,
    NotificationFilters,
    NotificationPage,
    NotificationPreferences,
    NotificationPriority,
    NotificationStatistics,
    NotificationStatus,
    Pagination,
    Recipient,
)
from infrastructure.notifications.preferences import PreferenceResolver
from infrastructure.notifications.selector import select_channels
from infrastructure.notifications.store import NotificationStore
from infrastructure.notifications.templates import (
    TemplateBinder,
    TemplateRegistry,
    get_template_registry,
)
from infrastructure.services.providers import get_settings

logger = get_module_logger()

NO_CHANNELS_SKIP = "skipped: no eligible channels"


class NotificationService:
    """Sends notifications to single recipients and manages their state.

    Attributes:
        directory: Recipient lookup
        dispatcher: Channel fan-out
        preferences: Preference resolver
        binder: Template binder
        store: Persistence coordinator
        clock: Time source, shared with the dispatcher
    """

    def __init__(
        self,
        repository: NotificationRepository,
        directory: UserDirectory,
        dispatcher: DeliveryDispatcher,
        registry: Optional[TemplateRegistry] = None,
        settings: Optional[NotificationSettings] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize the service.

        Args:
            repository: Notification and preference storage
            directory: User directory
            dispatcher: Delivery dispatcher
            registry: Template registry, defaults to the built-in templates
            settings: Notification settings, defaults to the application settings
            clock: Time source, defaults to the dispatcher's clock
        """
        settings = settings or get_settings().notifications
        self.settings = settings
        self.directory = directory
        self.dispatcher = dispatcher
        self.clock = clock or dispatcher.clock
        self.preferences = PreferenceResolver(repository, settings.default_timezone)
        self.binder = TemplateBinder(registry or get_template_registry())
        self.store = NotificationStore(
            repository,
            clock=self.clock,
            max_attempts=settings.record_max_attempts,
        )

    def send(self, draft: NotificationDraft) -> Notification:
        """Run the delivery pipeline for one recipient.

        Args:
            draft: Notification draft

        Returns:
            The stored notification with its delivery status

        Raises:
            RecipientNotFoundError: Unknown recipient.
            TemplateNotFoundError: Unknown template id.
            PersistenceError: Storage failed.
        """
        recipient = self._find_recipient(draft.recipient_id)
        preferences = self.preferences.resolve_or_default(draft.recipient_id)
        content = (
            self.binder.bind(draft.template_id, draft.variables)
            if draft.template_id
            else None
        )

        notification = self.store.create(draft, content)
        now = self.clock.now()

        if notification.scheduled_for is not None and notification.scheduled_for > now:
            logger.info(
                "notification_scheduled",
                notification_id=notification.id,
                scheduled_for=notification.scheduled_for.isoformat(),
            )
            return notification

        if preferences.defers_delivery and notification.priority != NotificationPriority.CRITICAL:
            logger.info(
                "notification_deferred_to_digest",
                notification_id=notification.id,
                batch_interval_minutes=preferences.frequency.batch_interval_minutes,
            )
            return notification

        delivered = self._deliver(notification, recipient, preferences, now)
        return delivered if delivered is not None else self.store.get(notification.id)

    def send_template(
        self,
        template_id: str,
        recipient_id: str,
        variables: Optional[Mapping[str, Any]] = None,
        **fields: Any,
    ) -> Notification:
        """Send a notification built from a registered template.

        The notification type defaults to the template's type.

        Args:
            template_id: Registered template id
            recipient_id: Recipient user id
            variables: Placeholder values
            **fields: Other draft fields (priority, entity_id, action_url, ...)
        """
        template = self.binder.registry.get(template_id)
        fields.setdefault("type", template.type)
        draft = NotificationDraft(
            template_id=template_id,
            recipient_id=recipient_id,
            variables=dict(variables or {}),
            **fields,
        )
        return self.send(draft)

    def retry_channel(
        self, notification_id: str, channel: NotificationChannel
    ) -> Notification:
        """Re-attempt delivery on one channel whose latest attempt failed.

        The new outcome is appended; earlier outcomes are kept.

        Raises:
            NotificationNotFoundError: Unknown notification.
            RetryNotAllowedError: No failed latest attempt on this channel.
            RecipientNotFoundError: Recipient no longer exists.
        """
        notification = self.store.get(notification_id)
        latest = notification.latest_attempts().get(channel)
        if latest is None:
            raise RetryNotAllowedError(notification_id, channel.value, "no previous attempt")
        if latest.success:
            raise RetryNotAllowedError(
                notification_id, channel.value, "latest attempt succeeded"
            )

        recipient = self._find_recipient(notification.recipient_id)
        outcomes = self.dispatcher.dispatch(notification, [channel], recipient)
        logger.info(
            "channel_retried",
            notification_id=notification_id,
            channel=channel.value,
            success=outcomes[0].success,
        )
        return self.store.record_delivery_outcomes(notification_id, outcomes)

    def dispatch_pending(self, notification_id: str) -> Notification:
        """Deliver a stored PENDING notification now.

        Used for scheduled notifications that came due and by digest runs.
        Notifications that are no longer PENDING are returned unchanged.
        """
        delivered = self._deliver_pending(notification_id)
        if delivered is None:
            return self.store.get(notification_id)
        return delivered

    def dispatch_due(self) -> List[Notification]:
        """Deliver every scheduled notification whose time has come.

        A failure on one notification is logged and does not stop the run.
        Runs may overlap; each notification is delivered by one run only.

        Returns:
            Notifications that were delivered in this run
        """
        delivered = []
        for notification in self.store.find_due_scheduled():
            try:
                result = self._deliver_pending(notification.id)
                if result is not None:
                    delivered.append(result)
            except NotificationError as e:
                logger.error(
                    "scheduled_dispatch_failed",
                    notification_id=notification.id,
                    error=str(e),
                )
        logger.info("scheduled_dispatch_completed", delivered=len(delivered))
        return delivered

    def get_preferences(self, user_id: str) -> NotificationPreferences:
        return self.preferences.resolve(user_id)

    def update_preferences(
        self, user_id: str, preferences: NotificationPreferences
    ) -> NotificationPreferences:
        return self.preferences.update(user_id, preferences)

    def get(self, notification_id: str, requesting_user_id: str) -> Notification:
        return self.store.get(notification_id, requesting_user_id)

    def list(
        self,
        user_id: str,
        filters: Optional[NotificationFilters] = None,
        pagination: Optional[Pagination] = None,
    ) -> NotificationPage:
        return self.store.list(user_id, filters, pagination)

    def mark_read(self, notification_id: str, requesting_user_id: str) -> Notification:
        return self.store.mark_read(notification_id, requesting_user_id)

    def mark_unread(self, notification_id: str, requesting_user_id: str) -> Notification:
        return self.store.mark_unread(notification_id, requesting_user_id)

    def mark_all_read(self, user_id: str) -> int:
        return self.store.mark_all_read(user_id)

    def unread_count(self, user_id: str) -> int:
        return self.store.unread_count(user_id)

    def delete(self, notification_id: str, requesting_user_id: str) -> bool:
        return self.store.delete(notification_id, requesting_user_id)

    def purge_expired(self, days: Optional[int] = None) -> int:
        """Delete notifications older than the retention window."""
        return self.store.purge_older_than(days or self.settings.retention_days)

    def statistics(
        self,
        user_id: Optional[str] = None,
        filters: Optional[NotificationFilters] = None,
    ) -> NotificationStatistics:
        return self.store.statistics(user_id, filters)

    def _find_recipient(self, recipient_id: str) -> Recipient:
        recipient = self.directory.find_by_id(recipient_id)
        if recipient is None:
            raise RecipientNotFoundError(recipient_id)
        return recipient

    def _deliver_pending(self, notification_id: str) -> Optional[Notification]:
        notification = self.store.get(notification_id)
        if notification.status != NotificationStatus.PENDING:
            logger.debug(
                "notification_not_pending",
                notification_id=notification_id,
                status=notification.status.value,
            )
            return None

        recipient = self._find_recipient(notification.recipient_id)
        preferences = self.preferences.resolve_or_default(notification.recipient_id)
        return self._deliver(notification, recipient, preferences, self.clock.now())

    def _deliver(
        self,
        notification: Notification,
        recipient: Recipient,
        preferences: NotificationPreferences,
        now: datetime,
    ) -> Optional[Notification]:
        """Claim, dispatch and record; None when another worker holds the claim."""
        claimed = self.store.claim_for_dispatch(notification.id)
        if claimed is None:
            logger.info("notification_claimed_elsewhere", notification_id=notification.id)
            return None
        notification = claimed

        channels = select_channels(
            notification.type, notification.priority, preferences, now
        )
        if not channels:
            logger.info(
                "notification_skipped",
                notification_id=notification.id,
                reason="no_eligible_channels",
            )
            skip = DeliveryOutcome(
                channel=NotificationChannel.IN_APP,
                success=False,
                error=NO_CHANNELS_SKIP,
                skipped=True,
            )
            return self.store.record_delivery_outcomes(notification.id, [skip])

        outcomes = self.dispatcher.dispatch(notification, channels, recipient)
        return self.store.record_delivery_outcomes(notification.id, outcomes)
