"""
Dependency providers.

Provides application-scoped provider functions for core services.
"""

from infrastructure.services.providers import get_settings

__all__ = [
    "get_settings",
]
