"""Notification engine core models.

Pydantic models for notifications, delivery outcomes, user preferences,
templates and the request/response shapes of the engine.

Enumerations are closed sets: unknown values are rejected at validation
time so policy code never sees an unexpected type, priority or channel.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

import pytz
from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationType(Enum):
    """Domain events that produce notifications."""

    INSPECTION_ASSIGNED = "inspection_assigned"
    INSPECTION_REASSIGNED = "inspection_reassigned"
    INSPECTION_COMPLETED = "inspection_completed"
    INSPECTION_CANCELLED = "inspection_cancelled"
    INSPECTION_DUE_REMINDER = "inspection_due_reminder"
    INSPECTION_OVERDUE = "inspection_overdue"
    ASSET_MAINTENANCE_DUE = "asset_maintenance_due"
    REPORT_GENERATED = "report_generated"
    SYSTEM_ALERT = "system_alert"
    SYSTEM_MAINTENANCE = "system_maintenance"


class NotificationPriority(Enum):
    """Notification priority levels.

    HIGH and CRITICAL unlock SMS. CRITICAL also bypasses quiet hours
    and digest deferral.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationChannel(Enum):
    """Delivery channels."""

    IN_APP = "in_app"
    EMAIL = "email"
    PUSH = "push"
    SMS = "sms"


# Fixed selection and dispatch order
CHANNEL_ORDER = (
    NotificationChannel.IN_APP,
    NotificationChannel.EMAIL,
    NotificationChannel.PUSH,
    NotificationChannel.SMS,
)


class NotificationStatus(Enum):
    """Aggregate delivery status of a notification.

    PENDING only exists between creation and the first recorded outcome,
    or while a scheduled/deferred notification waits for dispatch. The
    other values are derived from the delivery outcomes.
    """

    PENDING = "pending"
    SENT = "sent"
    PARTIALLY_DELIVERED = "partially_delivered"
    FAILED = "failed"
    SKIPPED = "skipped"


class DeliveryOutcome(BaseModel):
    """Result of one delivery attempt on one channel.

    Attributes:
        channel: Channel the attempt was made on
        success: Whether the sender accepted the notification
        error: Failure reason when success is False
        delivered_at: Time of successful delivery
        skipped: True for a policy skip record rather than an attempt
    """

    model_config = ConfigDict(frozen=True)

    channel: NotificationChannel
    success: bool
    error: Optional[str] = None
    delivered_at: Optional[datetime] = None
    skipped: bool = False

    @classmethod
    def delivered(cls, channel: NotificationChannel, at: datetime) -> "DeliveryOutcome":
        return cls(channel=channel, success=True, delivered_at=at)

    @classmethod
    def failure(cls, channel: NotificationChannel, error: str) -> "DeliveryOutcome":
        return cls(channel=channel, success=False, error=error)


class Recipient(BaseModel):
    """Recipient contact record from the user directory.

    Contact fields are optional; blank values are treated as absent so
    channel preconditions only need a None check.

    Example:
        recipient = Recipient(id="user-1", email="jane@example.com")
    """

    id: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None

    @field_validator("email", "phone", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v


class NotificationContent(BaseModel):
    """Recipient-independent notification content.

    Either ``template_id`` or both ``title`` and ``message`` must be
    provided. When a template is used, ``variables`` are bound into it and
    the bound text replaces any literal title/message.
    """

    type: NotificationType
    priority: NotificationPriority = NotificationPriority.MEDIUM
    sender_id: Optional[str] = None
    title: Optional[str] = Field(default=None, max_length=200)
    message: Optional[str] = Field(default=None, max_length=1000)
    template_id: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    action_url: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    scheduled_for: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_validator("scheduled_for", "expires_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def require_text_or_template(self) -> "NotificationContent":
        if self.template_id:
            return self
        if not self.title or not self.message:
            raise ValueError("title and message are required when no template_id is given")
        return self


class NotificationDraft(NotificationContent):
    """Content addressed to a single recipient."""

    recipient_id: str = Field(min_length=1)

    @classmethod
    def for_recipient(
        cls, content: NotificationContent, recipient_id: str
    ) -> "NotificationDraft":
        return cls(**content.model_dump(), recipient_id=recipient_id)


class Notification(BaseModel):
    """A persisted notification.

    ``delivery_status`` is append-only: retries add new outcomes and never
    rewrite earlier ones. ``delivery_version`` increases with every
    delivery update and guards concurrent writers. ``dispatch_claimed_at``
    is set once a worker has taken a PENDING notification for delivery.
    """

    id: str
    type: NotificationType
    priority: NotificationPriority
    recipient_id: str
    sender_id: Optional[str] = None
    title: str
    message: str
    template_id: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    action_url: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = NotificationStatus.PENDING
    is_read: bool = False
    read_at: Optional[datetime] = None
    delivery_status: List[DeliveryOutcome] = Field(default_factory=list)
    delivery_version: int = 0
    dispatch_claimed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    scheduled_for: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_validator(
        "created_at", "updated_at", "read_at", "scheduled_for", "expires_at", "dispatch_claimed_at"
    )
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= ensure_utc(now)

    def latest_attempts(self) -> Dict[NotificationChannel, DeliveryOutcome]:
        """Return the most recent attempted outcome per channel.

        Skip records are ignored.
        """
        latest: Dict[NotificationChannel, DeliveryOutcome] = {}
        for outcome in self.delivery_status:
            if not outcome.skipped:
                latest[outcome.channel] = outcome
        return latest


class ChannelPreference(BaseModel):
    """Per-channel opt-in and the notification types allowed on it."""

    enabled: bool = True
    types: Set[NotificationType] = Field(default_factory=set)

    def allows(self, notification_type: NotificationType) -> bool:
        return self.enabled and notification_type in self.types


class QuietHours(BaseModel):
    """Daily window during which only in-app delivery happens.

    The window is ``[start, end)`` in the given timezone and wraps past
    midnight when ``start > end``. ``start == end`` is an empty window.
    """

    enabled: bool = False
    start: str = "22:00"
    end: str = "08:00"
    timezone: str = "UTC"

    @field_validator("start", "end")
    @classmethod
    def validate_time_of_day(cls, v: str) -> str:
        if not _TIME_OF_DAY.match(v):
            raise ValueError(f"Time must be in HH:MM 24-hour format: {v}")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            pytz.timezone(v)
        except pytz.exceptions.UnknownTimeZoneError as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v


class DeliveryFrequency(BaseModel):
    """How often non-critical notifications reach the user."""

    digest: bool = False
    immediate: bool = True
    batch_interval_minutes: int = Field(default=60, ge=1)


class NotificationPreferences(BaseModel):
    """A user's delivery preferences."""

    email: ChannelPreference = Field(default_factory=ChannelPreference)
    push: ChannelPreference = Field(default_factory=ChannelPreference)
    sms: ChannelPreference = Field(default_factory=lambda: ChannelPreference(enabled=False))
    in_app: ChannelPreference = Field(
        default_factory=lambda: ChannelPreference(types=set(NotificationType))
    )
    quiet_hours: QuietHours = Field(default_factory=QuietHours)
    frequency: DeliveryFrequency = Field(default_factory=DeliveryFrequency)

    def for_channel(self, channel: NotificationChannel) -> ChannelPreference:
        return getattr(self, channel.value)

    @property
    def defers_delivery(self) -> bool:
        """True when non-critical notifications wait for a digest run."""
        return not self.frequency.immediate


class NotificationTemplate(BaseModel):
    """Reusable title/message pair with ``{{key}}`` placeholders.

    ``channels`` is a hint for callers; it does not override preferences.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    title: str
    message: str
    type: NotificationType
    channels: List[NotificationChannel] = Field(default_factory=list)
    variables: List[str] = Field(default_factory=list)


class BoundContent(BaseModel):
    """Title and message produced by binding a template."""

    model_config = ConfigDict(frozen=True)

    title: str
    message: str


class NotificationFilters(BaseModel):
    """Filters for listing and statistics queries. All fields are optional."""

    type: Optional[NotificationType] = None
    priority: Optional[NotificationPriority] = None
    status: Optional[NotificationStatus] = None
    channel: Optional[NotificationChannel] = None
    is_read: Optional[bool] = None
    sender_id: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    search: Optional[str] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    scheduled_after: Optional[datetime] = None
    scheduled_before: Optional[datetime] = None

    @field_validator(
        "created_after", "created_before", "scheduled_after", "scheduled_before"
    )
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    def matches(self, notification: Notification) -> bool:
        """Check a notification against every set filter."""
        n = notification
        if self.type is not None and n.type != self.type:
            return False
        if self.priority is not None and n.priority != self.priority:
            return False
        if self.status is not None and n.status != self.status:
            return False
        if self.is_read is not None and n.is_read != self.is_read:
            return False
        if self.sender_id is not None and n.sender_id != self.sender_id:
            return False
        if self.entity_type is not None and n.entity_type != self.entity_type:
            return False
        if self.entity_id is not None and n.entity_id != self.entity_id:
            return False
        if self.channel is not None and not any(
            o.channel == self.channel and not o.skipped for o in n.delivery_status
        ):
            return False
        if self.search:
            needle = self.search.lower()
            if needle not in n.title.lower() and needle not in n.message.lower():
                return False
        if self.created_after is not None and n.created_at < self.created_after:
            return False
        if self.created_before is not None and n.created_at > self.created_before:
            return False
        if self.scheduled_after is not None and (
            n.scheduled_for is None or n.scheduled_for < self.scheduled_after
        ):
            return False
        if self.scheduled_before is not None and (
            n.scheduled_for is None or n.scheduled_for > self.scheduled_before
        ):
            return False
        return True


class Pagination(BaseModel):
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=1, le=100)


class NotificationPage(BaseModel):
    """One page of notifications, newest first."""

    items: List[Notification]
    total: int
    offset: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


class BulkFailure(BaseModel):
    recipient_id: str
    error: str


class BulkSendResult(BaseModel):
    """Outcome of a bulk send.

    Every requested recipient id appears in exactly one of ``success``
    (as the id of the created notification) or ``failed``.
    """

    batch_id: str
    success: List[str] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)


class BulkNotificationRequest(BaseModel):
    content: NotificationContent
    recipient_ids: List[str] = Field(min_length=1)
    batch_id: Optional[str] = None


class NotificationEnvelope(BaseModel):
    """Queue message carrying a single draft or a bulk request."""

    draft: Optional[NotificationDraft] = None
    bulk_request: Optional[BulkNotificationRequest] = None
    idempotency_key: Optional[str] = None

    @model_validator(mode="after")
    def exactly_one_payload(self) -> "NotificationEnvelope":
        if (self.draft is None) == (self.bulk_request is None):
            raise ValueError("Envelope must carry exactly one of draft or bulk_request")
        return self


class ChannelStatistics(BaseModel):
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0


class NotificationStatistics(BaseModel):
    """Aggregate counts over a set of notifications.

    ``delivery_rate`` is the share of attempted notifications with status
    SENT; ``read_rate`` is the share of all notifications that were read.
    """

    total: int = 0
    read: int = 0
    unread: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_priority: Dict[str, int] = Field(default_factory=dict)
    by_channel: Dict[str, ChannelStatistics] = Field(default_factory=dict)
    delivery_rate: float = 0.0
    read_rate: float = 0.0
