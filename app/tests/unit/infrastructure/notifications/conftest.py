"""Test fixtures for notification engine tests."""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Set
from unittest.mock import MagicMock

import pytest

from infrastructure.configuration import NotificationSettings
from infrastructure.notifications.channels.base import ChannelSender
from infrastructure.notifications.contracts import FixedClock
from infrastructure.notifications.dispatcher import DeliveryDispatcher
from infrastructure.notifications.memory import (
    InMemoryNotificationRepository,
    InMemoryUserDirectory,
)
from infrastructure.notifications.models import (
    CHANNEL_ORDER,
    ChannelPreference,
    DeliveryFrequency,
    Notification,
    NotificationChannel,
    NotificationDraft,
    NotificationPreferences,
    NotificationPriority,
    NotificationType,
    QuietHours,
    Recipient,
)
from infrastructure.notifications.service import NotificationService
from infrastructure.notifications.store import NotificationStore
from infrastructure.notifications.templates import build_default_registry

# Monday noon UTC, outside the default quiet hours
NOON_UTC = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    """Fixed clock at noon UTC."""
    return FixedClock(NOON_UTC)


@pytest.fixture
def notification_settings():
    """Notification settings with short timeouts and no bulk pauses."""
    return NotificationSettings().model_copy(
        update={
            "in_app_timeout_seconds": 1.0,
            "push_timeout_seconds": 1.0,
            "email_timeout_seconds": 1.0,
            "sms_timeout_seconds": 1.0,
            "dispatch_concurrent": True,
            "dispatch_max_workers": 8,
            "bulk_chunk_size": 100,
            "bulk_chunk_delay_seconds": 0.0,
            "bulk_max_concurrency": 4,
            "record_max_attempts": 5,
        }
    )


@pytest.fixture
def recipient_factory():
    """Factory for creating Recipient instances.

    Example:
        recipient = recipient_factory(id="user-2", phone=None)
    """

    def _factory(
        id: str = "user-1",
        email: Optional[str] = "inspector@example.com",
        phone: Optional[str] = "+15551234567",
    ) -> Recipient:
        return Recipient(id=id, email=email, phone=phone)

    return _factory


@pytest.fixture
def directory(recipient_factory):
    """User directory with two recipients: one with full contact details, one in-app only."""
    return InMemoryUserDirectory(
        [
            recipient_factory(),
            recipient_factory(id="user-2", email=None, phone=None),
        ]
    )


@pytest.fixture
def repository():
    return InMemoryNotificationRepository()


@pytest.fixture
def sender_factory():
    """Factory for mock channel senders.

    Returns:
        Factory creating a MagicMock ChannelSender for a channel. ``send``
        returns None (delivered) unless ``result`` or ``side_effect`` is given.
    """

    def _factory(
        channel: NotificationChannel,
        result: Any = None,
        side_effect: Any = None,
    ) -> MagicMock:
        sender = MagicMock(spec=ChannelSender)
        sender.channel = channel
        sender.channel_name = channel.value
        sender.send.return_value = result
        if side_effect is not None:
            sender.send.side_effect = side_effect
        return sender

    return _factory


@pytest.fixture
def senders(sender_factory) -> Dict[NotificationChannel, MagicMock]:
    """One succeeding mock sender per channel."""
    return {channel: sender_factory(channel) for channel in CHANNEL_ORDER}


@pytest.fixture
def dispatcher(senders, notification_settings, clock):
    dispatcher = DeliveryDispatcher(
        senders.values(), settings=notification_settings, clock=clock
    )
    yield dispatcher
    dispatcher.shutdown(wait=True)


@pytest.fixture
def store(repository, clock):
    counter = iter(range(1, 10_000))
    return NotificationStore(
        repository,
        clock=clock,
        max_attempts=5,
        id_factory=lambda: f"n-{next(counter)}",
    )


@pytest.fixture
def service(repository, directory, dispatcher, notification_settings, clock):
    return NotificationService(
        repository,
        directory,
        dispatcher,
        registry=build_default_registry(),
        settings=notification_settings,
        clock=clock,
    )


@pytest.fixture
def preferences_factory():
    """Factory for NotificationPreferences.

    Defaults to every channel enabled for every type and quiet hours off.

    Example:
        prefs = preferences_factory(sms_enabled=False, quiet_hours=QuietHours(enabled=True))
    """

    def _factory(
        email_types: Optional[Iterable[NotificationType]] = None,
        push_types: Optional[Iterable[NotificationType]] = None,
        sms_types: Optional[Iterable[NotificationType]] = None,
        in_app_types: Optional[Iterable[NotificationType]] = None,
        email_enabled: bool = True,
        push_enabled: bool = True,
        sms_enabled: bool = True,
        in_app_enabled: bool = True,
        quiet_hours: Optional[QuietHours] = None,
        frequency: Optional[DeliveryFrequency] = None,
    ) -> NotificationPreferences:
        def _types(values) -> Set[NotificationType]:
            return set(NotificationType) if values is None else set(values)

        return NotificationPreferences(
            email=ChannelPreference(enabled=email_enabled, types=_types(email_types)),
            push=ChannelPreference(enabled=push_enabled, types=_types(push_types)),
            sms=ChannelPreference(enabled=sms_enabled, types=_types(sms_types)),
            in_app=ChannelPreference(enabled=in_app_enabled, types=_types(in_app_types)),
            quiet_hours=quiet_hours or QuietHours(enabled=False),
            frequency=frequency or DeliveryFrequency(),
        )

    return _factory


@pytest.fixture
def draft_factory():
    """Factory for NotificationDraft instances with literal title/message."""

    def _factory(
        recipient_id: str = "user-1",
        type: NotificationType = NotificationType.INSPECTION_ASSIGNED,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        title: Optional[str] = "Inspection assigned",
        message: Optional[str] = "You have a new inspection.",
        **fields: Any,
    ) -> NotificationDraft:
        return NotificationDraft(
            recipient_id=recipient_id,
            type=type,
            priority=priority,
            title=title,
            message=message,
            **fields,
        )

    return _factory


@pytest.fixture
def notification_factory():
    """Factory for stored-shape Notification instances."""

    def _factory(
        id: str = "n-1",
        recipient_id: str = "user-1",
        type: NotificationType = NotificationType.INSPECTION_ASSIGNED,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        **fields: Any,
    ) -> Notification:
        fields.setdefault("title", "Inspection assigned")
        fields.setdefault("message", "You have a new inspection.")
        fields.setdefault("created_at", NOON_UTC)
        fields.setdefault("updated_at", NOON_UTC)
        return Notification(
            id=id, recipient_id=recipient_id, type=type, priority=priority, **fields
        )

    return _factory
