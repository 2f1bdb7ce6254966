"""In-app channel: real-time push of stored notifications to connected clients."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from infrastructure.logging import get_module_logger
from infrastructure.notifications.channels.base import ChannelSender
from infrastructure.notifications.models import NotificationChannel, Recipient
from infrastructure.operations import OperationResult

logger = get_module_logger()


class RealtimePublisher(ABC):
    """Transport for real-time events (WebSocket hub, SSE broker, etc.)."""

    @abstractmethod
    def publish(self, room: str, event: str, payload: Dict[str, Any]) -> bool:
        """Publish an event to a room.

        Returns:
            True if at least one connection accepted the event.
        """


class InAppChannelSender(ChannelSender):
    """Delivers in-app notifications over a real-time publisher.

    The stored notification is the in-app record itself, so a user with
    no open connection still sees it on next load. The send only fails
    when the publisher raises.

    Args:
        publisher: Real-time transport
        room_prefix: Prefix of the per-user room name
    """

    def __init__(self, publisher: RealtimePublisher, room_prefix: str = "user"):
        self.publisher = publisher
        self.room_prefix = room_prefix

    @property
    def channel(self) -> NotificationChannel:
        return NotificationChannel.IN_APP

    def send(
        self,
        recipient: Recipient,
        title: str,
        message: str,
        data: Mapping[str, Any],
        action_url: Optional[str] = None,
    ) -> Optional[OperationResult]:
        room = f"{self.room_prefix}:{recipient.id}"
        payload = {
            "title": title,
            "message": message,
            "data": dict(data),
            "action_url": action_url,
        }
        delivered = self.publisher.publish(room, "notification", payload)
        logger.debug("in_app_event_published", room=room, live=delivered)
        return OperationResult.success(data={"room": room, "live": delivered})
