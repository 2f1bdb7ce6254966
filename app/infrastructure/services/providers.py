"""
Process-wide providers.

Settings are resolved once per process and shared by the dispatcher, the
notification service and the engine factory.
"""

from functools import lru_cache

from infrastructure.configuration import Settings


@lru_cache
def get_settings() -> Settings:
    """
    Return the settings singleton loaded from the environment.

    Tests that change NOTIFICATIONS_* variables call
    ``get_settings.cache_clear()`` so the next caller sees the new values.
    """
    return Settings()
