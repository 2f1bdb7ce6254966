"""Multi-channel delivery dispatcher.

Sends one notification to one recipient over the selected channels:
- Routes each channel to its registered ChannelSender
- Checks contact preconditions before any provider call
- Bounds every send with a per-channel timeout
- Captures failures per channel so one channel never affects another
- Skips expired notifications without sending

Usage Example:
    from infrastructure.notifications import DeliveryDispatcher, LoggingChannelSender
    from infrastructure.notifications.models import NotificationChannel

    dispatcher = DeliveryDispatcher(
        senders=[LoggingChannelSender(NotificationChannel.EMAIL)],
    )

    outcomes = dispatcher.dispatch(notification, [NotificationChannel.EMAIL], recipient)
    delivered = [o.channel for o in outcomes if o.success]
"""

import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from threading import Event, Lock
from typing import Callable, Dict, Iterable, List, Optional

from infrastructure.configuration import NotificationSettings
from infrastructure.logging import get_module_logger
from infrastructure.notifications.channels.base import ChannelSender
from infrastructure.notifications.contracts import Clock, SystemClock
from infrastructure.notifications.models import (
    DeliveryOutcome,
    Notification,
    NotificationChannel,
    Recipient,
)
from infrastructure.operations import OperationResult
from infrastructure.services.providers import get_settings

logger = get_module_logger()

TIMEOUT_ERROR = "timeout"
NO_SENDER_ERROR = "no sender registered for channel"
EXPIRED_ERROR = "skipped: notification expired"


def _requires_email(recipient: Recipient) -> Optional[str]:
    return None if recipient.email else "no email address available"


def _requires_phone(recipient: Recipient) -> Optional[str]:
    return None if recipient.phone else "no phone number available"


# Contact precondition per channel; returns an error message when unmet
PRECONDITIONS: Dict[NotificationChannel, Callable[[Recipient], Optional[str]]] = {
    NotificationChannel.EMAIL: _requires_email,
    NotificationChannel.SMS: _requires_phone,
}


class _PendingSend:
    """A submitted send whose deadline starts when a worker picks it up."""

    def __init__(self, channel: NotificationChannel, timeout: float):
        self.channel = channel
        self.timeout = timeout
        self.started = Event()
        self.started_at: Optional[float] = None
        self.future: Optional[Future] = None

    def run(self, send: Callable, *args):
        self.started_at = time.monotonic()
        self.started.set()
        return send(*args)

    def remaining(self) -> float:
        if self.started_at is None:
            return 0.0
        return max(0.0, self.started_at + self.timeout - time.monotonic())


class DeliveryDispatcher:
    """Per-notification channel fan-out.

    Attributes:
        senders: Dict mapping channel to its ChannelSender
        settings: Notification settings (timeouts, concurrency, pool size)
        concurrent: Send to channels concurrently (True) or one at a time
        clock: Time source for expiry checks and delivery timestamps

    Example:
        dispatcher = DeliveryDispatcher(
            senders=[email_sender, push_sender],
            settings=settings.notifications,
        )
        outcomes = dispatcher.dispatch(notification, channels, recipient)
    """

    def __init__(
        self,
        senders: Iterable[ChannelSender],
        settings: Optional[NotificationSettings] = None,
        clock: Optional[Clock] = None,
        concurrent: Optional[bool] = None,
    ):
        """Initialize the dispatcher.

        Args:
            senders: Channel senders; the last one registered for a channel wins
            settings: Notification settings, defaults to the application settings
            clock: Time source, defaults to the system clock
            concurrent: Overrides ``settings.dispatch_concurrent`` when given
        """
        if settings is None:
            settings = get_settings().notifications

        self.senders: Dict[NotificationChannel, ChannelSender] = {
            sender.channel: sender for sender in senders
        }
        self.settings = settings
        self.clock = clock or SystemClock()
        self.concurrent = settings.dispatch_concurrent if concurrent is None else concurrent

        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = Lock()
        self._shutdown = False

        logger.info(
            "initialized_delivery_dispatcher",
            channels=[c.value for c in self.senders],
            concurrent=self.concurrent,
        )

    def _get_or_create_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._shutdown:
                raise RuntimeError("DeliveryDispatcher has been shut down")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.settings.dispatch_max_workers,
                    thread_name_prefix="notification-send",
                )
                logger.debug(
                    "created_send_executor",
                    max_workers=self.settings.dispatch_max_workers,
                )
            return self._executor

    def shutdown(self, wait: bool = True) -> None:
        """Shut down the send pool. Safe to call more than once."""
        with self._executor_lock:
            self._shutdown = True
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
            logger.info("send_executor_shutdown", wait=wait)

    def get_available_channels(self) -> List[NotificationChannel]:
        return list(self.senders)

    def health_check(self) -> Dict[str, OperationResult]:
        """Run every sender's health check.

        Returns:
            Dict mapping channel name to its health result
        """
        results = {}
        for channel, sender in self.senders.items():
            try:
                results[channel.value] = sender.health_check()
            except Exception as e:
                logger.error("channel_health_check_failed", channel=channel.value, error=str(e))
                results[channel.value] = OperationResult.transient_error(
                    message=f"Health check failed: {e}",
                    error_code="HEALTH_CHECK_ERROR",
                )
        return results

    def dispatch(
        self,
        notification: Notification,
        channels: List[NotificationChannel],
        recipient: Recipient,
    ) -> List[DeliveryOutcome]:
        """Deliver a notification on the given channels.

        Never raises for delivery problems: exceptions, timeouts, unmet
        preconditions and provider rejections all become failed outcomes.

        Args:
            notification: Stored notification to deliver
            channels: Selected channels, in order
            recipient: Recipient contact record

        Returns:
            One outcome per channel in the order given, or a single skip
            record when the notification has expired.

        Raises:
            RuntimeError: The dispatcher has been shut down.
        """
        if notification.is_expired(self.clock.now()):
            logger.info(
                "notification_expired_skipped",
                notification_id=notification.id,
                expires_at=notification.expires_at.isoformat(),
            )
            return [
                DeliveryOutcome(
                    channel=NotificationChannel.IN_APP,
                    success=False,
                    error=EXPIRED_ERROR,
                    skipped=True,
                )
            ]

        if self.concurrent:
            outcomes = self._dispatch_concurrently(notification, channels, recipient)
        else:
            outcomes = [
                self._await(channel, self._start(notification, channel, recipient))
                for channel in channels
            ]

        logger.info(
            "notification_dispatched",
            notification_id=notification.id,
            channels=[c.value for c in channels],
            success_count=sum(1 for o in outcomes if o.success),
            total_attempts=len(outcomes),
        )
        return outcomes

    def _dispatch_concurrently(
        self,
        notification: Notification,
        channels: List[NotificationChannel],
        recipient: Recipient,
    ) -> List[DeliveryOutcome]:
        started = [
            (channel, self._start(notification, channel, recipient)) for channel in channels
        ]
        return [self._await(channel, pending) for channel, pending in started]

    def _start(
        self,
        notification: Notification,
        channel: NotificationChannel,
        recipient: Recipient,
    ):
        """Check preconditions and submit the send.

        Returns:
            A DeliveryOutcome when the send cannot start, otherwise the
            submitted _PendingSend.
        """
        sender = self.senders.get(channel)
        if sender is None:
            logger.warning("channel_sender_missing", channel=channel.value)
            return DeliveryOutcome.failure(channel, NO_SENDER_ERROR)

        precondition = PRECONDITIONS.get(channel)
        error = precondition(recipient) if precondition else None
        if error:
            logger.info(
                "channel_precondition_failed",
                notification_id=notification.id,
                channel=channel.value,
                error=error,
            )
            return DeliveryOutcome.failure(channel, error)

        pending = _PendingSend(channel, self.settings.timeout_for(channel.value))
        pending.future = self._get_or_create_executor().submit(
            pending.run,
            sender.send,
            recipient,
            notification.title,
            notification.message,
            {**notification.data, "notification_id": notification.id},
            notification.action_url,
        )
        # Unblocks the waiter if the future finishes without ever running
        pending.future.add_done_callback(lambda _: pending.started.set())
        return pending

    def _await(self, channel: NotificationChannel, pending) -> DeliveryOutcome:
        if isinstance(pending, DeliveryOutcome):
            return pending

        # Time spent queued behind other sends does not count against the timeout
        pending.started.wait()
        future: Future = pending.future
        try:
            result = future.result(timeout=pending.remaining())
        except FutureTimeoutError:
            future.cancel()
            logger.warning("channel_send_timed_out", channel=channel.value)
            return DeliveryOutcome.failure(channel, TIMEOUT_ERROR)
        except Exception as e:
            logger.warning(
                "channel_send_failed",
                channel=channel.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryOutcome.failure(channel, str(e) or type(e).__name__)

        if isinstance(result, OperationResult) and not result.is_success:
            logger.warning(
                "channel_send_rejected",
                channel=channel.value,
                error=result.message,
                error_code=result.error_code,
            )
            return DeliveryOutcome.failure(channel, result.message)

        return DeliveryOutcome.delivered(channel, self.clock.now())
