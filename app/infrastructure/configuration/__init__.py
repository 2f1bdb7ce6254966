"""Infrastructure configuration module - public API.

Centralized configuration for the notification engine using Pydantic
BaseSettings with domain-based organization.

Exports:
    Settings: Main settings class (for testing/overrides)
    NotificationSettings: Delivery engine settings class
    IdempotencySettings: Consumer idempotency settings class

Example:
    ```python
    from infrastructure.services import get_settings

    settings = get_settings()

    chunk_size = settings.notifications.bulk_chunk_size
    ttl = settings.idempotency.IDEMPOTENCY_TTL_SECONDS
    ```
"""

from infrastructure.configuration.settings import Settings
from infrastructure.configuration.features import NotificationSettings
from infrastructure.configuration.infrastructure import IdempotencySettings

__all__ = ["Settings", "NotificationSettings", "IdempotencySettings"]
