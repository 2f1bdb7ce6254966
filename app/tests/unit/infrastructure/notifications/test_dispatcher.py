"""Unit tests for DeliveryDispatcher.

Tests cover:
- Per-channel isolation of exceptions, rejections and timeouts
- Contact preconditions
- Expiry skips
- Outcome ordering in concurrent and sequential modes
- Health checks and lifecycle
"""

import threading
import time
from datetime import timedelta

import pytest

from infrastructure.notifications.dispatcher import (
    EXPIRED_ERROR,
    NO_SENDER_ERROR,
    TIMEOUT_ERROR,
    DeliveryDispatcher,
)
from infrastructure.notifications.models import CHANNEL_ORDER, NotificationChannel
from infrastructure.operations import OperationResult, OperationStatus

IN_APP = NotificationChannel.IN_APP
EMAIL = NotificationChannel.EMAIL
PUSH = NotificationChannel.PUSH
SMS = NotificationChannel.SMS


@pytest.mark.unit
class TestDispatch:
    """Tests for DeliveryDispatcher.dispatch."""

    def test_all_channels_delivered(
        self, dispatcher, senders, notification_factory, recipient_factory, clock
    ):
        """Every selected channel is sent once and reported delivered."""
        outcomes = dispatcher.dispatch(
            notification_factory(), list(CHANNEL_ORDER), recipient_factory()
        )

        assert [o.channel for o in outcomes] == list(CHANNEL_ORDER)
        assert all(o.success for o in outcomes)
        assert all(o.delivered_at == clock.now() for o in outcomes)
        for channel in CHANNEL_ORDER:
            senders[channel].send.assert_called_once()

    def test_sender_receives_content(
        self, dispatcher, senders, notification_factory, recipient_factory
    ):
        """Senders get the recipient, title, message, data and action URL."""
        notification = notification_factory(
            data={"inspection_id": "I-1"}, action_url="/inspections/I-1"
        )
        recipient = recipient_factory()

        dispatcher.dispatch(notification, [PUSH], recipient)

        args = senders[PUSH].send.call_args.args
        assert args[0] == recipient
        assert args[1] == notification.title
        assert args[2] == notification.message
        assert args[3]["inspection_id"] == "I-1"
        assert args[3]["notification_id"] == notification.id
        assert args[4] == "/inspections/I-1"

    def test_exception_isolated_to_channel(
        self, dispatcher, senders, notification_factory, recipient_factory
    ):
        """A raising sender fails only its own channel."""
        senders[EMAIL].send.side_effect = ConnectionError("smtp unreachable")

        outcomes = dispatcher.dispatch(
            notification_factory(), [IN_APP, EMAIL, PUSH], recipient_factory()
        )

        assert [o.success for o in outcomes] == [True, False, True]
        assert outcomes[1].error == "smtp unreachable"
        assert outcomes[1].delivered_at is None

    def test_exception_without_message_uses_type_name(
        self, dispatcher, senders, notification_factory, recipient_factory
    ):
        """An exception with an empty message is recorded by its type name."""
        senders[PUSH].send.side_effect = RuntimeError()

        outcomes = dispatcher.dispatch(notification_factory(), [PUSH], recipient_factory())

        assert outcomes[0].error == "RuntimeError"

    def test_rejected_result_recorded_as_failure(
        self, dispatcher, senders, notification_factory, recipient_factory
    ):
        """A non-success OperationResult is a sender-reported failure."""
        senders[SMS].send.return_value = OperationResult.permanent_error(
            "number blocked", error_code="BLOCKED"
        )

        outcomes = dispatcher.dispatch(notification_factory(), [SMS], recipient_factory())

        assert outcomes[0].success is False
        assert outcomes[0].error == "number blocked"

    def test_success_result_recorded_as_delivered(
        self, dispatcher, senders, notification_factory, recipient_factory
    ):
        """A successful OperationResult counts as delivered."""
        senders[PUSH].send.return_value = OperationResult.success(data={"id": "m-1"})

        outcomes = dispatcher.dispatch(notification_factory(), [PUSH], recipient_factory())

        assert outcomes[0].success is True

    def test_timeout_recorded_and_other_channels_unaffected(
        self,
        senders,
        notification_settings,
        clock,
        notification_factory,
        recipient_factory,
    ):
        """A send exceeding its channel timeout fails with 'timeout'."""
        release = threading.Event()
        senders[PUSH].send.side_effect = lambda *args: release.wait(5)
        settings = notification_settings.model_copy(update={"push_timeout_seconds": 0.05})
        dispatcher = DeliveryDispatcher(senders.values(), settings=settings, clock=clock)

        try:
            outcomes = dispatcher.dispatch(
                notification_factory(), [IN_APP, PUSH, EMAIL], recipient_factory()
            )
        finally:
            release.set()
            dispatcher.shutdown(wait=True)

        assert outcomes[0].success is True
        assert outcomes[1].success is False
        assert outcomes[1].error == TIMEOUT_ERROR
        assert outcomes[2].success is True

    def test_queued_send_timeout_starts_when_send_begins(
        self,
        senders,
        notification_settings,
        clock,
        notification_factory,
        recipient_factory,
    ):
        """A send waiting for a free worker is not timed out before it runs."""
        senders[EMAIL].send.side_effect = lambda *args: time.sleep(0.5)
        settings = notification_settings.model_copy(
            update={
                "dispatch_max_workers": 1,
                "email_timeout_seconds": 1.0,
                "in_app_timeout_seconds": 0.2,
            }
        )
        dispatcher = DeliveryDispatcher(senders.values(), settings=settings, clock=clock)

        try:
            outcomes = dispatcher.dispatch(
                notification_factory(), [EMAIL, IN_APP], recipient_factory()
            )
        finally:
            dispatcher.shutdown(wait=True)

        assert [(o.channel, o.success, o.error) for o in outcomes] == [
            (EMAIL, True, None),
            (IN_APP, True, None),
        ]
        senders[IN_APP].send.assert_called_once()

    def test_missing_email_fails_without_send(
        self, dispatcher, senders, notification_factory, recipient_factory
    ):
        """Email without an address fails before the sender is called."""
        outcomes = dispatcher.dispatch(
            notification_factory(), [IN_APP, EMAIL], recipient_factory(email=None)
        )

        assert outcomes[1].success is False
        assert outcomes[1].error == "no email address available"
        senders[EMAIL].send.assert_not_called()
        senders[IN_APP].send.assert_called_once()

    def test_missing_phone_fails_without_send(
        self, dispatcher, senders, notification_factory, recipient_factory
    ):
        """SMS without a phone number fails before the sender is called."""
        outcomes = dispatcher.dispatch(
            notification_factory(), [SMS], recipient_factory(phone="  ")
        )

        assert outcomes[0].error == "no phone number available"
        senders[SMS].send.assert_not_called()

    def test_unregistered_channel_fails(
        self, sender_factory, notification_settings, clock, notification_factory, recipient_factory
    ):
        """A channel without a sender yields a failed outcome."""
        dispatcher = DeliveryDispatcher(
            [sender_factory(IN_APP)], settings=notification_settings, clock=clock
        )

        try:
            outcomes = dispatcher.dispatch(
                notification_factory(), [IN_APP, PUSH], recipient_factory()
            )
        finally:
            dispatcher.shutdown()

        assert outcomes[0].success is True
        assert outcomes[1].error == NO_SENDER_ERROR

    def test_expired_notification_skipped(
        self, dispatcher, senders, notification_factory, recipient_factory, clock
    ):
        """An expired notification produces a single skip record and no sends."""
        notification = notification_factory(expires_at=clock.now() - timedelta(minutes=1))

        outcomes = dispatcher.dispatch(notification, list(CHANNEL_ORDER), recipient_factory())

        assert len(outcomes) == 1
        assert outcomes[0].skipped is True
        assert outcomes[0].success is False
        assert outcomes[0].error == EXPIRED_ERROR
        for sender in senders.values():
            sender.send.assert_not_called()

    def test_expiry_at_now_counts_as_expired(
        self, dispatcher, notification_factory, recipient_factory, clock
    ):
        """expires_at equal to now is already expired."""
        notification = notification_factory(expires_at=clock.now())

        outcomes = dispatcher.dispatch(notification, [IN_APP], recipient_factory())

        assert outcomes[0].skipped is True

    def test_future_expiry_dispatches(
        self, dispatcher, notification_factory, recipient_factory, clock
    ):
        """A notification expiring later is sent normally."""
        notification = notification_factory(expires_at=clock.now() + timedelta(hours=1))

        outcomes = dispatcher.dispatch(notification, [IN_APP], recipient_factory())

        assert outcomes[0].success is True

    def test_sequential_mode_matches_concurrent(
        self, senders, notification_settings, clock, notification_factory, recipient_factory
    ):
        """Sequential dispatch gives the same ordered outcomes."""
        senders[EMAIL].send.side_effect = ValueError("bad address")
        dispatcher = DeliveryDispatcher(
            senders.values(), settings=notification_settings, clock=clock, concurrent=False
        )

        try:
            outcomes = dispatcher.dispatch(
                notification_factory(), list(CHANNEL_ORDER), recipient_factory()
            )
        finally:
            dispatcher.shutdown()

        assert dispatcher.concurrent is False
        assert [o.channel for o in outcomes] == list(CHANNEL_ORDER)
        assert [o.success for o in outcomes] == [True, False, True, True]

    def test_empty_channel_list(self, dispatcher, notification_factory, recipient_factory):
        """No channels produces no outcomes."""
        assert dispatcher.dispatch(notification_factory(), [], recipient_factory()) == []


@pytest.mark.unit
class TestDispatcherLifecycle:
    """Tests for health checks, channel listing and shutdown."""

    def test_available_channels(self, dispatcher):
        """Registered channels are listed."""
        assert set(dispatcher.get_available_channels()) == set(CHANNEL_ORDER)

    def test_health_check_reports_each_channel(self, dispatcher, senders):
        """Health results are keyed by channel name; failures are captured."""
        for sender in senders.values():
            sender.health_check.return_value = OperationResult.success()
        senders[SMS].health_check.side_effect = RuntimeError("provider down")

        results = dispatcher.health_check()

        assert results["email"].is_success
        assert results["sms"].status == OperationStatus.TRANSIENT_ERROR
        assert results["sms"].error_code == "HEALTH_CHECK_ERROR"

    def test_dispatch_after_shutdown_raises(
        self, senders, notification_settings, clock, notification_factory, recipient_factory
    ):
        """A shut-down dispatcher refuses new sends."""
        dispatcher = DeliveryDispatcher(senders.values(), settings=notification_settings, clock=clock)
        dispatcher.shutdown()
        dispatcher.shutdown()

        with pytest.raises(RuntimeError):
            dispatcher.dispatch(notification_factory(), [IN_APP], recipient_factory())
