"""Wiring of the notification engine components."""

from dataclasses import dataclass
from typing import Iterable, Optional

from infrastructure.configuration import NotificationSettings
from infrastructure.idempotency import IdempotencyCache
from infrastructure.logging import get_module_logger
from infrastructure.notifications.bulk import BulkFanOutController
from infrastructure.notifications.channels import ChannelSender, LoggingChannelSender
from infrastructure.notifications.consumer import NotificationConsumer
from infrastructure.notifications.contracts import (
    Clock,
    NotificationRepository,
    UserDirectory,
)
from infrastructure.notifications.dispatcher import DeliveryDispatcher
from infrastructure.notifications.models import CHANNEL_ORDER
from infrastructure.notifications.service import NotificationService
from infrastructure.notifications.templates import TemplateRegistry
from infrastructure.services.providers import get_settings

logger = get_module_logger()


@dataclass
class NotificationEngine:
    """Wired engine components sharing one dispatcher and clock."""

    dispatcher: DeliveryDispatcher
    service: NotificationService
    bulk: BulkFanOutController
    consumer: NotificationConsumer

    def shutdown(self, wait: bool = True) -> None:
        self.dispatcher.shutdown(wait=wait)


def build_engine(
    repository: NotificationRepository,
    directory: UserDirectory,
    senders: Optional[Iterable[ChannelSender]] = None,
    settings: Optional[NotificationSettings] = None,
    clock: Optional[Clock] = None,
    registry: Optional[TemplateRegistry] = None,
    cache: Optional[IdempotencyCache] = None,
) -> NotificationEngine:
    """Build a notification engine.

    Args:
        repository: Notification storage
        directory: User directory
        senders: Channel senders; logging senders for every channel when omitted
        settings: Notification settings, defaults to the application settings
        clock: Time source, defaults to the system clock
        registry: Template registry, defaults to the built-in templates
        cache: Idempotency cache for the consumer

    Returns:
        NotificationEngine
    """
    settings = settings or get_settings().notifications
    if senders is None:
        senders = [LoggingChannelSender(channel) for channel in CHANNEL_ORDER]
        logger.info("using_logging_senders")

    dispatcher = DeliveryDispatcher(senders, settings=settings, clock=clock)
    service = NotificationService(
        repository,
        directory,
        dispatcher,
        registry=registry,
        settings=settings,
    )
    bulk = BulkFanOutController(service, settings=settings)
    consumer = NotificationConsumer(service, bulk, cache=cache)
    return NotificationEngine(
        dispatcher=dispatcher,
        service=service,
        bulk=bulk,
        consumer=consumer,
    )
