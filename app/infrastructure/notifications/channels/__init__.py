"""Channel sender implementations."""

from infrastructure.notifications.channels.base import ChannelSender
from infrastructure.notifications.channels.in_app import (
    InAppChannelSender,
    RealtimePublisher,
)
from infrastructure.notifications.channels.logging_sender import LoggingChannelSender

__all__ = [
    "ChannelSender",
    "InAppChannelSender",
    "RealtimePublisher",
    "LoggingChannelSender",
]
