"""Notification delivery feature settings."""

from pydantic import Field

from infrastructure.configuration.base import FeatureSettings


class NotificationSettings(FeatureSettings):
    """Notification delivery engine configuration.

    Controls per-channel send timeouts, dispatch concurrency, bulk fan-out
    pacing and retention of stored notifications.

    Environment Variables:
        NOTIFICATIONS_IN_APP_TIMEOUT_SECONDS: In-app/real-time send timeout (default: 2s)
        NOTIFICATIONS_PUSH_TIMEOUT_SECONDS: Push send timeout (default: 5s)
        NOTIFICATIONS_EMAIL_TIMEOUT_SECONDS: Email send timeout (default: 10s)
        NOTIFICATIONS_SMS_TIMEOUT_SECONDS: SMS send timeout (default: 10s)
        NOTIFICATIONS_DISPATCH_CONCURRENT: Send to selected channels concurrently (default: True)
        NOTIFICATIONS_DISPATCH_MAX_WORKERS: Worker threads shared by channel sends (default: 16)
        NOTIFICATIONS_BULK_CHUNK_SIZE: Recipients per bulk chunk (default: 100)
        NOTIFICATIONS_BULK_CHUNK_DELAY_SECONDS: Pause between bulk chunks (default: 0)
        NOTIFICATIONS_BULK_MAX_CONCURRENCY: Recipients processed in parallel (default: 8)
        NOTIFICATIONS_RECORD_MAX_ATTEMPTS: Attempts for optimistic delivery updates (default: 5)
        NOTIFICATIONS_RETENTION_DAYS: Age after which notifications are purged (default: 90)
        NOTIFICATIONS_DEFAULT_TIMEZONE: Quiet hours timezone for default preferences (default: UTC)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        timeout = settings.notifications.timeout_for("email")
        ```
    """

    in_app_timeout_seconds: float = Field(
        default=2.0,
        alias="NOTIFICATIONS_IN_APP_TIMEOUT_SECONDS",
        description="Timeout for in-app (real-time) sends",
    )
    push_timeout_seconds: float = Field(
        default=5.0,
        alias="NOTIFICATIONS_PUSH_TIMEOUT_SECONDS",
        description="Timeout for push sends",
    )
    email_timeout_seconds: float = Field(
        default=10.0,
        alias="NOTIFICATIONS_EMAIL_TIMEOUT_SECONDS",
        description="Timeout for email sends",
    )
    sms_timeout_seconds: float = Field(
        default=10.0,
        alias="NOTIFICATIONS_SMS_TIMEOUT_SECONDS",
        description="Timeout for SMS sends",
    )
    dispatch_concurrent: bool = Field(
        default=True,
        alias="NOTIFICATIONS_DISPATCH_CONCURRENT",
        description="Send to all selected channels concurrently",
    )
    dispatch_max_workers: int = Field(
        default=16,
        alias="NOTIFICATIONS_DISPATCH_MAX_WORKERS",
        description="Size of the shared channel send pool",
    )
    bulk_chunk_size: int = Field(
        default=100,
        alias="NOTIFICATIONS_BULK_CHUNK_SIZE",
        description="Recipients processed per bulk chunk",
    )
    bulk_chunk_delay_seconds: float = Field(
        default=0.0,
        alias="NOTIFICATIONS_BULK_CHUNK_DELAY_SECONDS",
        description="Pause between bulk chunks",
    )
    bulk_max_concurrency: int = Field(
        default=8,
        alias="NOTIFICATIONS_BULK_MAX_CONCURRENCY",
        description="Recipients processed in parallel within a chunk",
    )
    record_max_attempts: int = Field(
        default=5,
        alias="NOTIFICATIONS_RECORD_MAX_ATTEMPTS",
        description="Attempts for optimistic delivery-status updates",
    )
    retention_days: int = Field(
        default=90,
        alias="NOTIFICATIONS_RETENTION_DAYS",
        description="Age in days after which notifications are purged",
    )
    default_timezone: str = Field(
        default="UTC",
        alias="NOTIFICATIONS_DEFAULT_TIMEZONE",
        description="Quiet hours timezone used by default preferences",
    )

    def timeout_for(self, channel: str) -> float:
        """Return the send timeout for a channel name.

        Args:
            channel: Channel name (in_app, push, email, sms)

        Returns:
            Timeout in seconds, falling back to the email timeout for
            unknown channels.
        """
        timeouts = {
            "in_app": self.in_app_timeout_seconds,
            "push": self.push_timeout_seconds,
            "email": self.email_timeout_seconds,
            "sms": self.sms_timeout_seconds,
        }
        return timeouts.get(channel, self.email_timeout_seconds)
