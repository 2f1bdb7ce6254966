"""Multi-channel notification delivery engine.

Takes a notification intent (type, recipient, priority, content) and fans
it out across in-app, email, push and SMS according to the recipient's
preferences, priority rules and quiet hours, tracking the outcome of each
channel.

Usage:
    from infrastructure.notifications import (
        InMemoryNotificationRepository,
        InMemoryUserDirectory,
        NotificationPriority,
        Recipient,
        build_engine,
    )

    directory = InMemoryUserDirectory([Recipient(id="u1", email="u1@example.com")])
    engine = build_engine(InMemoryNotificationRepository(), directory)

    notification = engine.service.send_template(
        "inspection_assignment",
        recipient_id="u1",
        variables={"inspection_name": "Roof", "inspection_id": "I-7"},
        priority=NotificationPriority.HIGH,
    )
    statuses = [(o.channel.value, o.success) for o in notification.delivery_status]
"""

# Models
from infrastructure.notifications.models import (
    BulkSendResult,
    DeliveryOutcome,
    Notification,
    NotificationChannel,
    NotificationContent,
    NotificationDraft,
    NotificationEnvelope,
    NotificationFilters,
    NotificationPreferences,
    NotificationPriority,
    NotificationStatus,
    NotificationTemplate,
    NotificationType,
    Pagination,
    Recipient,
)

# Errors
from infrastructure.notifications.errors import (
    NotificationError,
    NotificationNotFoundError,
    PersistenceError,
    PreferencesUnavailableError,
    RecipientNotFoundError,
    RetryNotAllowedError,
    TemplateNotFoundError,
    UnauthorizedError,
)

# Interfaces and reference implementations
from infrastructure.notifications.contracts import (
    Clock,
    FixedClock,
    NotificationRepository,
    SystemClock,
    UserDirectory,
)
from infrastructure.notifications.memory import (
    InMemoryNotificationRepository,
    InMemoryUserDirectory,
)

# Channels
from infrastructure.notifications.channels import (
    ChannelSender,
    InAppChannelSender,
    LoggingChannelSender,
    RealtimePublisher,
)

# Components
from infrastructure.notifications.preferences import PreferenceResolver, default_preferences
from infrastructure.notifications.selector import is_within_quiet_hours, select_channels
from infrastructure.notifications.templates import (
    TemplateBinder,
    TemplateRegistry,
    get_template_registry,
)
from infrastructure.notifications.dispatcher import DeliveryDispatcher
from infrastructure.notifications.store import NotificationStore, derive_status
from infrastructure.notifications.service import NotificationService
from infrastructure.notifications.bulk import BulkFanOutController
from infrastructure.notifications.consumer import NotificationConsumer
from infrastructure.notifications.factory import NotificationEngine, build_engine

__all__ = [
    # Models
    "BulkSendResult",
    "DeliveryOutcome",
    "Notification",
    "NotificationChannel",
    "NotificationContent",
    "NotificationDraft",
    "NotificationEnvelope",
    "NotificationFilters",
    "NotificationPreferences",
    "NotificationPriority",
    "NotificationStatus",
    "NotificationTemplate",
    "NotificationType",
    "Pagination",
    "Recipient",
    # Errors
    "NotificationError",
    "NotificationNotFoundError",
    "PersistenceError",
    "PreferencesUnavailableError",
    "RecipientNotFoundError",
    "RetryNotAllowedError",
    "TemplateNotFoundError",
    "UnauthorizedError",
    # Interfaces
    "Clock",
    "FixedClock",
    "NotificationRepository",
    "SystemClock",
    "UserDirectory",
    "InMemoryNotificationRepository",
    "InMemoryUserDirectory",
    # Channels
    "ChannelSender",
    "InAppChannelSender",
    "LoggingChannelSender",
    "RealtimePublisher",
    # Components
    "PreferenceResolver",
    "default_preferences",
    "is_within_quiet_hours",
    "select_channels",
    "TemplateBinder",
    "TemplateRegistry",
    "get_template_registry",
    "DeliveryDispatcher",
    "NotificationStore",
    "derive_status",
    "NotificationService",
    "BulkFanOutController",
    "NotificationConsumer",
    "NotificationEngine",
    "build_engine",
]
