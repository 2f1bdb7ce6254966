"""Channel sender abstract base class.

Every delivery channel (in-app, email, push, SMS) is reached through a
ChannelSender registered with the DeliveryDispatcher.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from infrastructure.notifications.models import NotificationChannel, Recipient
from infrastructure.operations import OperationResult


class ChannelSender(ABC):
    """Abstract base class for channel senders.

    Senders wrap a provider (SMTP relay, push gateway, SMS API, real-time
    socket hub). The dispatcher checks contact preconditions before
    calling ``send`` and enforces the per-channel timeout around it.

    A send is considered delivered when ``send`` returns None or a
    successful OperationResult. A non-success OperationResult is a
    provider-reported failure and its message becomes the recorded error.
    Raised exceptions are recorded as failures too.

    Example Implementation:
        class PushSender(ChannelSender):

            @property
            def channel(self) -> NotificationChannel:
                return NotificationChannel.PUSH

            def send(self, recipient, title, message, data, action_url=None):
                response = self._gateway.publish(recipient.id, title, message)
                if response.rejected:
                    return OperationResult.permanent_error(response.reason)
                return OperationResult.success(data={"message_id": response.id})
    """

    @property
    @abstractmethod
    def channel(self) -> NotificationChannel:
        """Channel this sender delivers on."""

    @property
    def channel_name(self) -> str:
        return self.channel.value

    @abstractmethod
    def send(
        self,
        recipient: Recipient,
        title: str,
        message: str,
        data: Mapping[str, Any],
        action_url: Optional[str] = None,
    ) -> Optional[OperationResult]:
        """Deliver one notification to one recipient.

        Args:
            recipient: Recipient contact record
            title: Notification title
            message: Notification body
            data: Structured payload for rich clients
            action_url: Optional deep link

        Returns:
            None or a successful OperationResult when delivered, a failed
            OperationResult when the provider rejected the send.
        """

    def health_check(self) -> OperationResult:
        """Check provider connectivity.

        Senders without a cheap connectivity check report healthy.
        """
        return OperationResult.success(message=f"{self.channel_name} sender available")
