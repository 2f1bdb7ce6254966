"""Logging channel sender for local development."""

from typing import Any, Mapping, Optional

from infrastructure.logging import get_module_logger
from infrastructure.notifications.channels.base import ChannelSender
from infrastructure.notifications.models import NotificationChannel, Recipient
from infrastructure.operations import OperationResult

logger = get_module_logger()


class LoggingChannelSender(ChannelSender):
    """Writes each send to the structured log instead of a provider.

    Args:
        channel: Channel this sender stands in for
    """

    def __init__(self, channel: NotificationChannel):
        self._channel = channel

    @property
    def channel(self) -> NotificationChannel:
        return self._channel

    def send(
        self,
        recipient: Recipient,
        title: str,
        message: str,
        data: Mapping[str, Any],
        action_url: Optional[str] = None,
    ) -> Optional[OperationResult]:
        logger.info(
            "notification_logged",
            channel=self.channel_name,
            recipient_id=recipient.id,
            email=recipient.email,
            phone=recipient.phone,
            title=title,
            action_url=action_url,
        )
        return OperationResult.success(message="logged")
